"""
Funding driver: mine blocks to wallet addresses.
"""

from __future__ import annotations

from loguru import logger

from settlement.errors import FundingError
from settlement.rpc import NodeGateway


def blocks_until_spendable(maturity: int) -> int:
    """
    Blocks to mine before the first block's reward can be spent.

    The reward of a block becomes spendable once `maturity` further blocks are
    built on top of it, so a fresh chain needs maturity + 1 blocks.
    """
    if maturity < 0:
        raise ValueError("maturity must be non-negative")
    return maturity + 1


def mine(node: NodeGateway, address: str, n_blocks: int) -> int:
    """
    Mine n_blocks with rewards paid to address.

    Returns:
        Chain tip height after mining
    """
    if n_blocks < 1:
        raise ValueError(f"n_blocks must be at least 1, got {n_blocks}")

    block_hashes = node.generate_to_address(n_blocks, address)
    tip_height = node.get_block_count()
    logger.info(f"Mined {len(block_hashes)} block(s) to {address}, tip height {tip_height}")
    return tip_height


def fund_until_spendable(
    node: NodeGateway, wallet: NodeGateway, address: str, maturity: int
) -> int:
    """
    Mine enough blocks to address for the wallet to hold a spendable balance.

    Raises:
        FundingError: If the wallet balance is still zero afterwards
    """
    n_blocks = blocks_until_spendable(maturity)
    logger.info(f"Generating {n_blocks} blocks to {wallet.wallet or 'wallet'} address {address}")
    tip_height = mine(node, address, n_blocks)

    balance = wallet.get_balance()
    logger.info(f"Spendable balance after {n_blocks} blocks: {balance} BTC")
    if balance <= 0:
        raise FundingError(
            f"Wallet {wallet.wallet!r} has no spendable balance after mining {n_blocks} blocks"
        )
    return tip_height


def confirm(node: NodeGateway, address: str) -> int:
    """Mine a single block to confirm pending transactions."""
    return mine(node, address, 1)
