"""
Exceptions raised by the settlement workflow.

Everything derives from SettlementError so the CLI can abort the run on any
of them without catching unrelated bugs.
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base exception for settlement failures"""

    pass


class NodeConnectionError(SettlementError):
    """Raised when the node cannot be reached or rejects our credentials"""

    pass


class NodeRPCError(SettlementError):
    """Raised when the node answers a call with a JSON-RPC error object."""

    def __init__(self, method: str, code: int | str, message: str):
        self.method = method
        self.code = code
        self.message = message
        super().__init__(f"RPC error {code} in {method}: {message}")


class WalletProvisionError(SettlementError):
    """Raised when a wallet cannot be created or loaded"""

    pass


class AddressNetworkError(SettlementError):
    """Raised when an address is not valid on the node's network"""

    pass


class FundingError(SettlementError):
    """Raised when mining did not produce a spendable balance"""

    pass


class TransferError(SettlementError):
    """Raised when the node refuses to build or broadcast a payment"""

    pass


class ProvenanceError(SettlementError):
    """Raised when a transaction's provenance cannot be reconstructed"""

    pass


class AmbiguousChangeError(ProvenanceError):
    """
    Raised in strict mode when more than one output could be the change output.

    Attributes:
        candidates: (address, amount_sats) for every non-counterparty output
    """

    def __init__(self, txid: str | None, candidates: list[tuple[str | None, int]]):
        self.txid = txid
        self.candidates = candidates
        super().__init__(
            f"Transaction {txid} has {len(candidates)} non-counterparty outputs, "
            "cannot pick a single change output"
        )
