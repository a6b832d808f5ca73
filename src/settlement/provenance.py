"""
Transaction provenance reconstruction.

Rebuilds who paid whom in a confirmed transaction using only the public fields
of raw transactions:

1. The spending input's owner and amount come from dereferencing the output
   it spends in the previous transaction (one hop, resolved on demand).
2. The transaction's own outputs are split into the payment to a known
   counterparty address and the change returned to the sender.

The functions below work on plain verbose-getrawtransaction dicts so they can
be tested against fixtures. ProvenanceReconstructor wires them to a node.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from loguru import logger

from settlement.constants import COIN
from settlement.errors import AmbiguousChangeError, ProvenanceError, SettlementError
from settlement.rpc import NodeGateway

# Fetches the verbose form of a transaction by txid
TxFetcher = Callable[[str], Mapping[str, Any]]


def btc_to_sats(value: Any) -> int | None:
    """
    Convert a BTC amount as reported by the node into satoshis.

    Returns None for anything that is not a finite amount with at most
    8 decimal places.
    """
    if isinstance(value, bool) or value is None:
        return None
    try:
        amount = Decimal(str(value)) * COIN
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount != amount.to_integral_value():
        return None
    return int(amount)


@dataclass(frozen=True)
class DecodedOutput:
    address: str | None
    amount: int


@dataclass(frozen=True)
class TransactionView:
    """Fields of a verbose getrawtransaction result used for reconstruction."""

    txid: str | None
    vin: tuple[Mapping[str, Any], ...] = ()
    vout: tuple[Mapping[str, Any], ...] = ()
    blockhash: str | None = None
    confirmations: int = 0

    @classmethod
    def from_rpc(cls, data: Mapping[str, Any]) -> TransactionView:
        """Parse a node result; malformed parts become empty rather than raising."""
        vin = data.get("vin")
        vout = data.get("vout")
        confirmations = data.get("confirmations")
        blockhash = data.get("blockhash")
        return cls(
            txid=data.get("txid") if isinstance(data.get("txid"), str) else None,
            vin=tuple(v for v in vin if isinstance(v, Mapping)) if isinstance(vin, list) else (),
            vout=tuple(v for v in vout if isinstance(v, Mapping))
            if isinstance(vout, list)
            else (),
            blockhash=blockhash if isinstance(blockhash, str) else None,
            confirmations=confirmations if isinstance(confirmations, int) else 0,
        )


@dataclass(frozen=True)
class ResolvedInput:
    """An input with the address and amount of the output it spends."""

    prev_txid: str | None
    prev_vout: int | None
    address: str | None = None
    amount: int = 0
    resolved: bool = False


@dataclass(frozen=True)
class OutputClassification:
    payment_amount: int = 0
    change_address: str | None = None
    change_amount: int = 0
    # Every non-counterparty output in vout order
    change_candidates: tuple[DecodedOutput, ...] = ()


@dataclass(frozen=True)
class ProvenanceResult:
    """Reconstructed facts about one confirmed transfer. Amounts in satoshis."""

    txid: str
    input_address: str | None
    input_amount: int
    payment_amount: int
    change_address: str | None
    change_amount: int
    fee: int
    block_height: int
    block_hash: str
    inputs: tuple[ResolvedInput, ...] = field(default=(), compare=False)


def decode_output(vout: Mapping[str, Any]) -> DecodedOutput | None:
    """
    Decode a vout entry into (address, amount).

    The address is None for scripts without a standard address (OP_RETURN,
    bare multisig, ...). Returns None if the amount itself is unusable.
    """
    amount = btc_to_sats(vout.get("value"))
    if amount is None or amount < 0:
        return None

    script_pub_key = vout.get("scriptPubKey")
    address = None
    if isinstance(script_pub_key, Mapping):
        address = script_pub_key.get("address")
        # Nodes before v22 report a list of addresses instead
        if not address:
            addresses = script_pub_key.get("addresses")
            if isinstance(addresses, list) and addresses:
                address = addresses[0]
    if not isinstance(address, str) or not address:
        address = None

    return DecodedOutput(address=address, amount=amount)


def resolve_input(vin: Mapping[str, Any], fetch: TxFetcher) -> ResolvedInput:
    """
    Follow an input to the output it spends.

    Any failure (coinbase input, fetch error, index out of range, undecodable
    output) degrades to an unresolved input with no address and zero amount.
    """
    prev_txid = vin.get("txid")
    prev_vout = vin.get("vout")
    valid_index = isinstance(prev_vout, int) and not isinstance(prev_vout, bool)
    if not isinstance(prev_txid, str) or not valid_index:
        logger.warning("Input does not reference a previous output, using empty input")
        return ResolvedInput(prev_txid=None, prev_vout=None)

    unresolved = ResolvedInput(prev_txid=prev_txid, prev_vout=prev_vout)

    logger.debug(f"Fetching previous transaction: {prev_txid}")
    try:
        prev_tx = TransactionView.from_rpc(fetch(prev_txid))
    except SettlementError as e:
        logger.warning(f"Failed to fetch previous transaction {prev_txid}: {e}")
        return unresolved

    if not 0 <= prev_vout < len(prev_tx.vout):
        logger.warning(
            f"Output index {prev_vout} out of range for {prev_txid} "
            f"({len(prev_tx.vout)} outputs), using empty input"
        )
        return unresolved

    decoded = decode_output(prev_tx.vout[prev_vout])
    if decoded is None:
        logger.warning(f"Failed to decode output {prev_txid}:{prev_vout}, using empty input")
        return unresolved

    return ResolvedInput(
        prev_txid=prev_txid,
        prev_vout=prev_vout,
        address=decoded.address,
        amount=decoded.amount,
        resolved=True,
    )


def classify_outputs(
    outputs: Sequence[Mapping[str, Any]],
    counterparty_address: str,
    strict: bool = False,
    txid: str | None = None,
) -> OutputClassification:
    """
    Split outputs into the counterparty payment and the change output.

    Outputs without a decodable address are left out. The output paying
    counterparty_address gives the payment amount; every other output is a
    change candidate and the last one in vout order is reported as change.

    Args:
        outputs: vout entries of the transaction
        counterparty_address: Address the payment was sent to
        strict: Raise AmbiguousChangeError instead of picking the last
            candidate when there is more than one
        txid: Only used for error messages

    Raises:
        AmbiguousChangeError: strict is set and several change candidates exist
    """
    payment_amount = 0
    candidates: list[DecodedOutput] = []

    for vout in outputs:
        decoded = decode_output(vout)
        if decoded is None or decoded.address is None:
            logger.debug(f"Skipping output without a decodable address: n={vout.get('n')}")
            continue
        if decoded.address == counterparty_address:
            payment_amount = decoded.amount
        else:
            candidates.append(decoded)

    if strict and len(candidates) > 1:
        raise AmbiguousChangeError(txid, [(c.address, c.amount) for c in candidates])
    if len(candidates) > 1:
        logger.warning(
            f"{len(candidates)} non-counterparty outputs in {txid}, reporting the last as change"
        )

    change = candidates[-1] if candidates else None
    return OutputClassification(
        payment_amount=payment_amount,
        change_address=change.address if change else None,
        change_amount=change.amount if change else 0,
        change_candidates=tuple(candidates),
    )


def normalize_fee(value: Any) -> int:
    """Fee in satoshis as a non-negative number (wallets report it negated)."""
    sats = btc_to_sats(value)
    if sats is None:
        raise ValueError(f"Invalid fee amount: {value!r}")
    return abs(sats)


def compute_fee(
    inputs: Sequence[ResolvedInput], outputs: Sequence[Mapping[str, Any]]
) -> int | None:
    """
    Fee as sum(inputs) - sum(outputs).

    Returns None unless every input was resolved, since a missing input amount
    would make the difference meaningless.
    """
    if not inputs or not all(i.resolved for i in inputs):
        return None
    total_in = sum(i.amount for i in inputs)
    total_out = 0
    for vout in outputs:
        decoded = decode_output(vout)
        if decoded is None:
            return None
        total_out += decoded.amount
    return abs(total_in - total_out)


class ProvenanceReconstructor:
    """
    Reconstructs the provenance of a confirmed transfer from node data.

    Args:
        node: Gateway used for getrawtransaction and block lookups
        wallet: Optional gateway of the sending wallet, used for the
            wallet-reported fee and confirmation info (gettransaction)
        strict_change: Fail on ambiguous change instead of taking the last output
    """

    def __init__(
        self,
        node: NodeGateway,
        wallet: NodeGateway | None = None,
        strict_change: bool = False,
    ):
        self.node = node
        self.wallet = wallet
        self.strict_change = strict_change

    def fetch(self, txid: str) -> Mapping[str, Any]:
        result = self.node.get_raw_transaction(txid, True)
        if not isinstance(result, Mapping):
            raise ProvenanceError(f"Node returned no verbose data for {txid}")
        return result

    def reconstruct(self, txid: str, counterparty_address: str) -> ProvenanceResult:
        """
        Reconstruct input provenance and output classification for txid.

        Only the first input is reported; the design assumes single-input
        transfers. All inputs are still resolved so the fee can be recomputed
        when no wallet-reported fee is available.

        Raises:
            ProvenanceError: If txid cannot be fetched or is not confirmed
            AmbiguousChangeError: In strict mode with several change candidates
        """
        try:
            tx = TransactionView.from_rpc(self.fetch(txid))
        except SettlementError as e:
            raise ProvenanceError(f"Cannot fetch transaction {txid}: {e}") from e

        inputs = tuple(resolve_input(vin, self.fetch) for vin in tx.vin)
        if inputs:
            first = inputs[0]
        else:
            logger.warning(f"Transaction {txid} has no inputs, using empty input")
            first = ResolvedInput(prev_txid=None, prev_vout=None)

        outputs = classify_outputs(
            tx.vout, counterparty_address, strict=self.strict_change, txid=txid
        )

        wallet_tx = self.wallet.get_transaction(txid) if self.wallet is not None else {}
        fee = self._fee(txid, wallet_tx, inputs, tx)
        block_height, block_hash = self._confirmation(txid, wallet_tx, tx)

        result = ProvenanceResult(
            txid=txid,
            input_address=first.address,
            input_amount=first.amount,
            payment_amount=outputs.payment_amount,
            change_address=outputs.change_address,
            change_amount=outputs.change_amount,
            fee=fee,
            block_height=block_height,
            block_hash=block_hash,
            inputs=inputs,
        )
        logger.info(
            f"Reconstructed {txid}: input {result.input_amount} sats, "
            f"payment {result.payment_amount} sats, change {result.change_amount} sats, "
            f"fee {result.fee} sats"
        )
        return result

    def _fee(
        self,
        txid: str,
        wallet_tx: Mapping[str, Any],
        inputs: Sequence[ResolvedInput],
        tx: TransactionView,
    ) -> int:
        if wallet_tx.get("fee") is not None:
            return normalize_fee(wallet_tx["fee"])

        fee = compute_fee(inputs, tx.vout)
        if fee is None:
            logger.warning(f"No fee reported for {txid} and inputs unresolved, using 0")
            return 0
        return fee

    def _confirmation(
        self, txid: str, wallet_tx: Mapping[str, Any], tx: TransactionView
    ) -> tuple[int, str]:
        block_hash = wallet_tx.get("blockhash") or tx.blockhash
        if not block_hash:
            raise ProvenanceError(f"Transaction {txid} is not confirmed in a block")

        block_height = wallet_tx.get("blockheight")
        if not isinstance(block_height, int):
            header = self.node.get_block_header(block_hash)
            block_height = header.get("height") if isinstance(header, Mapping) else None
        if not isinstance(block_height, int):
            raise ProvenanceError(f"No block height available for {txid} in {block_hash}")

        return block_height, block_hash
