"""
Wallet provisioning: make sure the named wallets exist and are loaded.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from loguru import logger

from settlement.errors import SettlementError, WalletProvisionError
from settlement.rpc import NodeGateway


class WalletAction(str, Enum):
    CREATED = "created"
    LOADED = "loaded"
    ALREADY_LOADED = "already_loaded"


def ensure_wallet(node: NodeGateway, name: str) -> WalletAction:
    """
    Create or load a wallet so that it is usable.

    First match wins:
    1. Not in the wallet directory -> createwallet (which also loads it)
    2. On disk but not loaded -> loadwallet
    3. Otherwise nothing to do

    Raises:
        WalletProvisionError: If the node fails to list, create or load
    """
    try:
        existing = node.list_wallet_dir()
        loaded = node.list_wallets()

        if name not in existing:
            logger.info(f"Creating {name} wallet")
            node.create_wallet(name)
            return WalletAction.CREATED

        if name not in loaded:
            logger.info(f"Loading {name} wallet")
            node.load_wallet(name)
            return WalletAction.LOADED

    except SettlementError as e:
        raise WalletProvisionError(f"Failed to provision wallet {name!r}: {e}") from e

    logger.info(f"{name} wallet already loaded")
    return WalletAction.ALREADY_LOADED


def ensure_wallets(node: NodeGateway, names: Iterable[str]) -> dict[str, WalletAction]:
    """Provision each wallet in order, stopping at the first failure."""
    return {name: ensure_wallet(node, name) for name in names}
