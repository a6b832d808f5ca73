"""
Bitcoin Core JSON-RPC gateway.

The only component of the workflow that performs I/O. Every call is a single
synchronous round trip: no retries, and any failure is raised to the caller.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from settlement.constants import (
    DEFAULT_RPC_PASSWORD,
    DEFAULT_RPC_TIMEOUT,
    DEFAULT_RPC_URL,
    DEFAULT_RPC_USER,
)
from settlement.errors import NodeConnectionError, NodeRPCError


def _json_default(value: Any) -> Any:
    # Bitcoin Core accepts amounts as strings, which keeps Decimal exact on the wire
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class NodeGateway:
    """
    Synchronous client for a Bitcoin Core node's RPC interface.

    A gateway created with for_wallet() sends wallet RPCs to
    <rpc_url>/wallet/<name> and shares the parent's HTTP connection pool.
    """

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        rpc_user: str = DEFAULT_RPC_USER,
        rpc_password: str = DEFAULT_RPC_PASSWORD,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        client: httpx.Client | None = None,
        wallet: str | None = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.rpc_user = rpc_user
        self.rpc_password = rpc_password
        self.timeout = timeout
        self.wallet = wallet
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout, auth=(rpc_user, rpc_password))
        self._request_id = 0

    @property
    def endpoint(self) -> str:
        if self.wallet is None:
            return self.rpc_url
        return f"{self.rpc_url}/wallet/{quote(self.wallet, safe='')}"

    def for_wallet(self, name: str) -> NodeGateway:
        """Return a gateway whose calls are scoped to the named wallet."""
        return NodeGateway(
            rpc_url=self.rpc_url,
            rpc_user=self.rpc_user,
            rpc_password=self.rpc_password,
            timeout=self.timeout,
            client=self.client,
            wallet=name,
        )

    def call(self, method: str, params: list | None = None) -> Any:
        """
        Make an RPC call to Bitcoin Core.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPC result, with JSON numbers holding a fraction decoded as Decimal

        Raises:
            NodeRPCError: The node answered with an error object
            NodeConnectionError: On connection, timeout or authentication errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        logger.debug(f"RPC {method} -> {self.endpoint}")

        try:
            response = self.client.post(
                self.endpoint,
                content=json.dumps(payload, default=_json_default),
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise NodeConnectionError(f"RPC call {method} timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise NodeConnectionError(f"RPC call {method} failed: {e}") from e

        if response.status_code in (401, 403):
            logger.error(f"RPC authentication rejected for {method}")
            raise NodeConnectionError(
                f"Node rejected RPC credentials (HTTP {response.status_code})"
            )

        # Bitcoin Core reports RPC errors with HTTP 500/404 and a JSON body,
        # so look for an error object before checking the status code.
        try:
            data = json.loads(response.text, parse_float=Decimal)
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                error_code = error_info.get("code", "unknown")
                error_msg = error_info.get("message", str(error_info))
            else:
                error_code, error_msg = "unknown", str(error_info)
            logger.error(f"RPC error in {method}: {error_code} {error_msg}")
            raise NodeRPCError(method, error_code, error_msg)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise NodeConnectionError(f"RPC call {method} failed: {e}") from e

        if not isinstance(data, dict):
            raise NodeConnectionError(f"Invalid JSON-RPC response for {method}")

        return data.get("result")

    # Chain

    def get_blockchain_info(self) -> dict[str, Any]:
        return self.call("getblockchaininfo")

    def get_block_count(self) -> int:
        return self.call("getblockcount")

    def get_block_hash(self, height: int) -> str:
        return self.call("getblockhash", [height])

    def get_block_header(self, block_hash: str) -> dict[str, Any]:
        return self.call("getblockheader", [block_hash])

    def get_raw_transaction(self, txid: str, verbose: bool = True) -> Any:
        return self.call("getrawtransaction", [txid, verbose])

    def get_mempool_entry(self, txid: str) -> dict[str, Any]:
        return self.call("getmempoolentry", [txid])

    def generate_to_address(self, n_blocks: int, address: str) -> list[str]:
        return self.call("generatetoaddress", [n_blocks, address])

    def validate_address(self, address: str) -> dict[str, Any]:
        return self.call("validateaddress", [address])

    # Wallet management

    def list_wallets(self) -> list[str]:
        return self.call("listwallets")

    def list_wallet_dir(self) -> list[str]:
        """Names of wallets present in the node's wallet directory."""
        result = self.call("listwalletdir")
        return [entry["name"] for entry in result.get("wallets", [])]

    def create_wallet(self, name: str) -> dict[str, Any]:
        return self.call("createwallet", [name])

    def load_wallet(self, name: str) -> dict[str, Any]:
        return self.call("loadwallet", [name])

    # Wallet scoped

    def get_new_address(self, label: str = "") -> str:
        return self.call("getnewaddress", [label])

    def get_balance(self) -> Decimal:
        return Decimal(self.call("getbalance"))

    def send_to_address(self, address: str, amount: Decimal) -> str:
        return self.call("sendtoaddress", [address, amount])

    def get_transaction(self, txid: str) -> dict[str, Any]:
        """Wallet view of a transaction: fee, blockheight, blockhash, details."""
        return self.call("gettransaction", [txid])

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> NodeGateway:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
