"""
Bitcoin and node constants used by the settlement workflow.
"""

from __future__ import annotations

from decimal import Decimal

# Satoshis per BTC
COIN = 100_000_000

# Coinbase outputs need this many confirmations on top of their block before
# they can be spent. Bitcoin Core's COINBASE_MATURITY.
DEFAULT_COINBASE_MATURITY = 100

# Default regtest RPC endpoint and credentials
DEFAULT_RPC_URL = "http://127.0.0.1:18443"
DEFAULT_RPC_USER = "alice"
DEFAULT_RPC_PASSWORD = "password"

# Timeout for regular RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0

DEFAULT_MINER_WALLET = "Miner"
DEFAULT_TRADER_WALLET = "Trader"
DEFAULT_PAYMENT_AMOUNT = Decimal("20")

# Address labels used when asking the wallets for fresh addresses
MINING_ADDRESS_LABEL = "Mining Reward"
RECEIVE_ADDRESS_LABEL = "Received"
