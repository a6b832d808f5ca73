"""
Transfer executor: pay from one wallet to an address.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from loguru import logger

from settlement.config import NetworkType
from settlement.errors import AddressNetworkError, NodeRPCError, TransferError
from settlement.rpc import NodeGateway


def require_network(node: NodeGateway, address: str, network: NetworkType) -> str:
    """
    Check that address is valid on the node's network.

    Address decoding is left to the node: validateaddress only accepts
    addresses for the chain it runs.

    Raises:
        AddressNetworkError: If the node does not accept the address
    """
    result = node.validate_address(address)
    if not result.get("isvalid", False):
        error = result.get("error", "invalid address")
        raise AddressNetworkError(f"Address {address} is not valid on {network.value}: {error}")
    return address


def pay(
    wallet: NodeGateway,
    to_address: str,
    amount: Decimal,
    network: NetworkType = NetworkType.REGTEST,
) -> str:
    """
    Send amount BTC from wallet to to_address.

    The recipient is checked against the node's network before anything is sent.

    Returns:
        txid of the broadcast transaction

    Raises:
        AddressNetworkError: If the recipient is not valid on the node's network
        TransferError: On a non-positive amount or if the node rejects the payment
    """
    if amount <= 0:
        raise TransferError(f"Payment amount must be positive, got {amount}")

    require_network(wallet, to_address, network)

    try:
        txid = wallet.send_to_address(to_address, amount)
    except NodeRPCError as e:
        raise TransferError(f"Payment of {amount} BTC to {to_address} failed: {e.message}") from e

    logger.info(f"Sent {amount} BTC to {to_address}, txid {txid}")
    return txid


def check_mempool(node: NodeGateway, txid: str) -> dict[str, Any] | None:
    """Log the mempool entry of a freshly broadcast transaction, if present."""
    try:
        entry = node.get_mempool_entry(txid)
    except NodeRPCError as e:
        logger.warning(f"Transaction {txid} not found in mempool: {e.message}")
        return None

    fees = entry.get("fees", {})
    logger.info(
        f"Transaction {txid} in mempool, vsize {entry.get('vsize')}, fee {fees.get('base')} BTC"
    )
    return entry
