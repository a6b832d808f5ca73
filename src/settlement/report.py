"""
Settlement record and its fixed ten-line text format.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from loguru import logger

from settlement.constants import COIN
from settlement.provenance import ProvenanceResult


def format_btc(sats: int) -> str:
    """Format satoshis as plain BTC without trailing zeros: 50, 0.00015, 0."""
    amount = (Decimal(sats) / COIN).normalize()
    return format(amount, "f")


@dataclass(frozen=True)
class SettlementRecord:
    """Denormalized summary of a settled transfer. Amounts in satoshis."""

    txid: str
    input_address: str | None
    input_amount: int
    counterparty_address: str
    counterparty_amount: int
    change_address: str | None
    change_amount: int
    fee: int
    block_height: int
    block_hash: str

    @classmethod
    def from_provenance(
        cls, counterparty_address: str, result: ProvenanceResult
    ) -> SettlementRecord:
        return cls(
            txid=result.txid,
            input_address=result.input_address,
            input_amount=result.input_amount,
            counterparty_address=counterparty_address,
            counterparty_amount=result.payment_amount,
            change_address=result.change_address,
            change_amount=result.change_amount,
            fee=abs(result.fee),
            block_height=result.block_height,
            block_hash=result.block_hash,
        )


def record_lines(record: SettlementRecord) -> list[str]:
    """The ten positional lines of a record, in their fixed order."""
    return [
        record.txid,
        record.input_address or "",
        format_btc(record.input_amount),
        record.counterparty_address,
        format_btc(record.counterparty_amount),
        record.change_address or "",
        format_btc(record.change_amount),
        format_btc(record.fee),
        str(record.block_height),
        record.block_hash,
    ]


def render_record(record: SettlementRecord) -> str:
    return "".join(f"{line}\n" for line in record_lines(record))


def write_record(record: SettlementRecord, path: Path) -> None:
    """Write the record to path. I/O errors propagate to the caller."""
    path.write_text(render_record(record))
    logger.info(f"Transaction details written to {path}")


def format_summary(record: SettlementRecord) -> str:
    lines = [
        "=== Settlement Summary ===",
        f"Transaction ID: {record.txid}",
        f"Input:          {record.input_address or '<unknown>'} "
        f"({format_btc(record.input_amount)} BTC)",
        f"Payment:        {record.counterparty_address} "
        f"({format_btc(record.counterparty_amount)} BTC)",
        f"Change:         {record.change_address or '<none>'} "
        f"({format_btc(record.change_amount)} BTC)",
        f"Fee:            {format_btc(record.fee)} BTC",
        f"Confirmed in block {record.block_height}: {record.block_hash}",
        "==========================",
    ]
    return "\n".join(lines)
