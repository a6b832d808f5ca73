"""
The settlement workflow: provision, fund, pay, confirm, reconstruct.

Each step depends on the effect of the previous one on the node, so they run
strictly in order and any fatal error aborts the run.
"""

from __future__ import annotations

from loguru import logger

from settlement.config import CHAIN_NAMES, SettlementSettings
from settlement.constants import MINING_ADDRESS_LABEL, RECEIVE_ADDRESS_LABEL
from settlement.errors import SettlementError
from settlement.funding import confirm, fund_until_spendable
from settlement.provenance import ProvenanceReconstructor
from settlement.report import SettlementRecord
from settlement.rpc import NodeGateway
from settlement.transfer import check_mempool, pay, require_network
from settlement.wallets import ensure_wallets


def check_chain(node: NodeGateway, settings: SettlementSettings) -> dict:
    """Log getblockchaininfo and warn if the node runs another network."""
    info = node.get_blockchain_info()
    chain = info.get("chain")
    logger.info(f"Connected to node: chain={chain} blocks={info.get('blocks')}")
    if CHAIN_NAMES.get(chain) not in (None, settings.network):
        logger.warning(f"Node runs {chain} but settings expect {settings.network.value}")
    return info


def run_settlement(node: NodeGateway, settings: SettlementSettings) -> SettlementRecord:
    """
    Run the whole workflow and return the reconstructed record.

    Nothing is written here; the caller persists the record only once this
    returns, so a failed run leaves no partial output.
    """
    check_chain(node, settings)

    ensure_wallets(node, [settings.miner_wallet, settings.trader_wallet])
    miner = node.for_wallet(settings.miner_wallet)
    trader = node.for_wallet(settings.trader_wallet)

    miner_address = require_network(
        miner, miner.get_new_address(MINING_ADDRESS_LABEL), settings.network
    )
    fund_until_spendable(node, miner, miner_address, settings.coinbase_maturity)

    trader_address = trader.get_new_address(RECEIVE_ADDRESS_LABEL)
    logger.info(f"Sending {settings.payment_amount} BTC to Trader address: {trader_address}")
    txid = pay(miner, trader_address, settings.payment_amount, settings.network)

    check_mempool(node, txid)

    confirm(node, miner_address)
    try:
        logger.info(f"Trader balance: {trader.get_balance()} BTC")
    except SettlementError as e:
        logger.warning(f"Could not read trader balance: {e}")

    reconstructor = ProvenanceReconstructor(
        node, wallet=miner, strict_change=settings.strict_change
    )
    result = reconstructor.reconstruct(txid, trader_address)
    return SettlementRecord.from_provenance(trader_address, result)
