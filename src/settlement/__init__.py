"""
settlement - Regtest settlement workflow for Bitcoin Core.

Provisions wallets, funds them by mining, pays between them and rebuilds a
settlement record from the node's own ledger data.
"""

__version__ = "0.1.0"

from settlement.config import NetworkType, SettlementSettings
from settlement.errors import (
    AddressNetworkError,
    AmbiguousChangeError,
    FundingError,
    NodeConnectionError,
    NodeRPCError,
    ProvenanceError,
    SettlementError,
    TransferError,
    WalletProvisionError,
)
from settlement.provenance import (
    ProvenanceReconstructor,
    ProvenanceResult,
    TransactionView,
    classify_outputs,
    decode_output,
    normalize_fee,
    resolve_input,
)
from settlement.report import SettlementRecord, format_btc, record_lines, write_record
from settlement.rpc import NodeGateway
from settlement.wallets import WalletAction, ensure_wallet, ensure_wallets
from settlement.workflow import run_settlement

__all__ = [
    "AddressNetworkError",
    "AmbiguousChangeError",
    "FundingError",
    "NetworkType",
    "NodeConnectionError",
    "NodeGateway",
    "NodeRPCError",
    "ProvenanceError",
    "ProvenanceReconstructor",
    "ProvenanceResult",
    "SettlementError",
    "SettlementRecord",
    "SettlementSettings",
    "TransactionView",
    "TransferError",
    "WalletAction",
    "WalletProvisionError",
    "classify_outputs",
    "decode_output",
    "ensure_wallet",
    "ensure_wallets",
    "format_btc",
    "normalize_fee",
    "record_lines",
    "resolve_input",
    "run_settlement",
    "write_record",
]
