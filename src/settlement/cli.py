"""
Command-line interface for the regtest settlement workflow.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from pydantic import ValidationError

from settlement.config import NetworkType, SettlementSettings, get_settings
from settlement.errors import SettlementError
from settlement.provenance import ProvenanceReconstructor
from settlement.report import (
    SettlementRecord,
    format_summary,
    render_record,
    write_record,
)
from settlement.rpc import NodeGateway
from settlement.workflow import run_settlement

app = typer.Typer(
    name="settle",
    help="Regtest settlement - fund, pay and reconstruct a transfer from node data",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def build_gateway(settings: SettlementSettings) -> NodeGateway:
    return NodeGateway(
        rpc_url=settings.bitcoin_rpc_url,
        rpc_user=settings.bitcoin_rpc_user,
        rpc_password=settings.bitcoin_rpc_password,
        timeout=settings.rpc_timeout,
    )


def _load_settings(**overrides: object) -> SettlementSettings:
    try:
        return get_settings(**overrides)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)


RpcUrl = Annotated[
    str | None, typer.Option("--rpc-url", envvar="BITCOIN_RPC_URL", help="Node RPC URL")
]
RpcUser = Annotated[str | None, typer.Option("--rpc-user", envvar="BITCOIN_RPC_USER")]
RpcPassword = Annotated[
    str | None, typer.Option("--rpc-password", envvar="BITCOIN_RPC_PASSWORD")
]
LogLevel = Annotated[str, typer.Option("--log-level", "-l", help="Log level")]


@app.command()
def run(
    rpc_url: RpcUrl = None,
    rpc_user: RpcUser = None,
    rpc_password: RpcPassword = None,
    network: Annotated[
        NetworkType | None, typer.Option("--network", "-n", help="Bitcoin network")
    ] = None,
    miner_wallet: Annotated[
        str | None, typer.Option("--miner-wallet", help="Wallet funded by mining")
    ] = None,
    trader_wallet: Annotated[
        str | None, typer.Option("--trader-wallet", help="Wallet receiving the payment")
    ] = None,
    amount: Annotated[
        str | None, typer.Option("--amount", "-a", help="Payment amount in BTC")
    ] = None,
    maturity: Annotated[
        int | None, typer.Option("--maturity", help="Coinbase maturity in blocks")
    ] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Settlement record file")
    ] = None,
    strict_change: Annotated[
        bool,
        typer.Option("--strict-change", help="Fail if the change output is ambiguous"),
    ] = False,
    log_level: LogLevel = "INFO",
) -> None:
    """Provision wallets, fund, pay, confirm and write the settlement record."""
    setup_logging(log_level)

    settings = _load_settings(
        bitcoin_rpc_url=rpc_url,
        bitcoin_rpc_user=rpc_user,
        bitcoin_rpc_password=rpc_password,
        network=network,
        miner_wallet=miner_wallet,
        trader_wallet=trader_wallet,
        payment_amount=amount,
        coinbase_maturity=maturity,
        output_path=output,
        strict_change=strict_change or None,
        log_level=log_level,
    )

    try:
        with build_gateway(settings) as node:
            record = run_settlement(node, settings)
        write_record(record, settings.output_path)
    except (SettlementError, OSError) as e:
        logger.error(f"Settlement failed: {e}")
        raise typer.Exit(1)

    typer.echo(format_summary(record))


@app.command()
def inspect(
    txid: Annotated[str, typer.Argument(help="Confirmed transaction id")],
    counterparty: Annotated[
        str, typer.Option("--counterparty", "-c", help="Address the payment was sent to")
    ],
    wallet: Annotated[
        str | None,
        typer.Option("--wallet", "-w", help="Sending wallet, for the wallet-reported fee"),
    ] = None,
    rpc_url: RpcUrl = None,
    rpc_user: RpcUser = None,
    rpc_password: RpcPassword = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the record here")
    ] = None,
    strict_change: Annotated[bool, typer.Option("--strict-change")] = False,
    log_level: LogLevel = "INFO",
) -> None:
    """Reconstruct the settlement record of an existing confirmed transaction."""
    setup_logging(log_level)

    settings = _load_settings(
        bitcoin_rpc_url=rpc_url,
        bitcoin_rpc_user=rpc_user,
        bitcoin_rpc_password=rpc_password,
    )

    try:
        with build_gateway(settings) as node:
            reconstructor = ProvenanceReconstructor(
                node,
                wallet=node.for_wallet(wallet) if wallet else None,
                strict_change=strict_change,
            )
            result = reconstructor.reconstruct(txid, counterparty)
        record = SettlementRecord.from_provenance(counterparty, result)
        if output is not None:
            write_record(record, output)
    except (SettlementError, OSError) as e:
        logger.error(f"Reconstruction failed: {e}")
        raise typer.Exit(1)

    if output is None:
        typer.echo(render_record(record), nl=False)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
