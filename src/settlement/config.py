"""
Configuration management using pydantic-settings.

Values come from the environment (or a .env file) and can be overridden by
CLI options. The resulting settings object is passed explicitly to the
workflow; nothing reads it from module state.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from settlement.constants import (
    DEFAULT_COINBASE_MATURITY,
    DEFAULT_MINER_WALLET,
    DEFAULT_PAYMENT_AMOUNT,
    DEFAULT_RPC_PASSWORD,
    DEFAULT_RPC_TIMEOUT,
    DEFAULT_RPC_URL,
    DEFAULT_RPC_USER,
    DEFAULT_TRADER_WALLET,
)


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


# Bitcoin Core reports "main"/"test" in getblockchaininfo's chain field
CHAIN_NAMES: dict[str, NetworkType] = {
    "main": NetworkType.MAINNET,
    "test": NetworkType.TESTNET,
    "testnet4": NetworkType.TESTNET,
    "signet": NetworkType.SIGNET,
    "regtest": NetworkType.REGTEST,
}


class SettlementSettings(BaseSettings):
    """Settings for one settlement run."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Node access
    bitcoin_rpc_url: str = DEFAULT_RPC_URL
    bitcoin_rpc_user: str = DEFAULT_RPC_USER
    bitcoin_rpc_password: str = DEFAULT_RPC_PASSWORD
    rpc_timeout: float = Field(default=DEFAULT_RPC_TIMEOUT, gt=0)
    network: NetworkType = NetworkType.REGTEST

    # Wallets
    miner_wallet: str = Field(default=DEFAULT_MINER_WALLET, min_length=1)
    trader_wallet: str = Field(default=DEFAULT_TRADER_WALLET, min_length=1)

    # Workflow
    coinbase_maturity: int = Field(
        default=DEFAULT_COINBASE_MATURITY,
        ge=0,
        description="Confirmations a coinbase output needs before it is spendable",
    )
    payment_amount: Decimal = Field(default=DEFAULT_PAYMENT_AMOUNT, gt=0, decimal_places=8)
    output_path: Path = Path("../out.txt")
    strict_change: bool = Field(
        default=False,
        description="Fail instead of picking the last output when change is ambiguous",
    )

    log_level: str = "INFO"

    @model_validator(mode="after")
    def check_distinct_wallets(self) -> SettlementSettings:
        """Funding and receiving wallets must differ."""
        if self.miner_wallet == self.trader_wallet:
            raise ValueError("miner_wallet and trader_wallet must be different wallets")
        return self


def get_settings(**overrides: object) -> SettlementSettings:
    """Build settings from the environment, applying non-None overrides."""
    values = {key: value for key, value in overrides.items() if value is not None}
    return SettlementSettings(**values)
