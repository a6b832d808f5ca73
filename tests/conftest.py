"""
Test configuration and in-memory node fakes.

FixtureNode serves canned verbose transactions for provenance tests.
FakeRegtestNode simulates just enough of a regtest node (wallets, mining,
coinbase maturity, payments) to drive the whole workflow without bitcoind.
"""

from __future__ import annotations

import copy
import hashlib
from decimal import Decimal
from typing import Any

import pytest

from settlement.errors import NodeRPCError

MINER_ADDRESS = "bcrt1qminer0000000000000000000000000000000"
MINER_CHANGE_ADDRESS = "bcrt1qminerchange00000000000000000000000000"
TRADER_ADDRESS = "bcrt1qtrader000000000000000000000000000000"
OTHER_ADDRESS = "bcrt1qother0000000000000000000000000000000"

COINBASE_TXID = "aa" * 32
TRANSFER_TXID = "bb" * 32
BLOCK_HASH = "00" * 31 + "66"


def _hash(*parts: object) -> str:
    return hashlib.sha256(":".join(str(p) for p in parts).encode()).hexdigest()


def make_vout(n: int, value: str, address: str | None) -> dict[str, Any]:
    script_pub_key: dict[str, Any] = {"hex": "0014" + "00" * 20, "type": "witness_v0_keyhash"}
    if address is None:
        script_pub_key = {"hex": "6a04deadbeef", "type": "nulldata"}
    else:
        script_pub_key["address"] = address
    return {"value": Decimal(value), "n": n, "scriptPubKey": script_pub_key}


def make_tx(
    txid: str,
    vin: list[dict[str, Any]],
    vout: list[dict[str, Any]],
    blockhash: str | None = BLOCK_HASH,
) -> dict[str, Any]:
    tx: dict[str, Any] = {"txid": txid, "hash": txid, "vin": vin, "vout": vout}
    if blockhash is not None:
        tx["blockhash"] = blockhash
        tx["confirmations"] = 1
    return tx


class FixtureNode:
    """Gateway stand-in answering from canned transaction dicts."""

    def __init__(
        self,
        transactions: dict[str, dict[str, Any]] | None = None,
        wallet_transactions: dict[str, dict[str, Any]] | None = None,
        headers: dict[str, dict[str, Any]] | None = None,
    ):
        self.transactions = transactions or {}
        self.wallet_transactions = wallet_transactions or {}
        self.headers = headers or {}
        self.wallet: str | None = None
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def for_wallet(self, name: str) -> FixtureNode:
        return self

    def get_raw_transaction(self, txid: str, verbose: bool = True) -> dict[str, Any]:
        self.calls.append(("getrawtransaction", (txid, verbose)))
        if txid not in self.transactions:
            raise NodeRPCError(
                "getrawtransaction", -5, "No such mempool or blockchain transaction"
            )
        return copy.deepcopy(self.transactions[txid])

    def get_transaction(self, txid: str) -> dict[str, Any]:
        self.calls.append(("gettransaction", (txid,)))
        if txid not in self.wallet_transactions:
            raise NodeRPCError("gettransaction", -5, "Invalid or non-wallet transaction id")
        return copy.deepcopy(self.wallet_transactions[txid])

    def get_block_header(self, block_hash: str) -> dict[str, Any]:
        self.calls.append(("getblockheader", (block_hash,)))
        if block_hash not in self.headers:
            raise NodeRPCError("getblockheader", -5, "Block not found")
        return copy.deepcopy(self.headers[block_hash])


@pytest.fixture
def coinbase_tx() -> dict[str, Any]:
    return make_tx(
        COINBASE_TXID,
        [{"coinbase": "510101", "sequence": 4294967295}],
        [make_vout(0, "50.00000000", MINER_ADDRESS)],
        blockhash="00" * 31 + "01",
    )


@pytest.fixture
def transfer_tx() -> dict[str, Any]:
    return make_tx(
        TRANSFER_TXID,
        [{"txid": COINBASE_TXID, "vout": 0, "sequence": 4294967293}],
        [
            make_vout(0, "29.99998590", MINER_CHANGE_ADDRESS),
            make_vout(1, "20.00000000", TRADER_ADDRESS),
        ],
    )


@pytest.fixture
def fixture_node(coinbase_tx: dict[str, Any], transfer_tx: dict[str, Any]) -> FixtureNode:
    return FixtureNode(
        transactions={COINBASE_TXID: coinbase_tx, TRANSFER_TXID: transfer_tx},
        wallet_transactions={
            TRANSFER_TXID: {
                "txid": TRANSFER_TXID,
                "amount": Decimal("-20.00000000"),
                "fee": Decimal("-0.00001410"),
                "confirmations": 1,
                "blockhash": BLOCK_HASH,
                "blockheight": 102,
            }
        },
        headers={BLOCK_HASH: {"hash": BLOCK_HASH, "height": 102}},
    )


class FakeRegtestNode:
    """
    In-memory regtest node.

    Coinbase outputs pay 50 BTC and mature after `maturity` further blocks.
    Payments spend one mature coinbase output, pay the recipient at vout 0 and
    return change at vout 1 with a fixed fee.
    """

    FEE = Decimal("0.00001410")
    SUBSIDY = Decimal("50.00000000")

    def __init__(
        self,
        maturity: int = 100,
        wallet_dir: set[str] | None = None,
        loaded: set[str] | None = None,
    ):
        self.maturity = maturity
        self.wallet_dir: set[str] = set(wallet_dir or ())
        self.loaded: set[str] = set(loaded or ())
        self.block_hashes: list[str] = [_hash("genesis")]
        self.transactions: dict[str, dict[str, Any]] = {}
        self.tx_height: dict[str, int] = {}
        self.mempool: list[str] = []
        self.spent: set[tuple[str, int]] = set()
        self.address_owner: dict[str, str] = {}
        self.wallet_txids: dict[str, set[str]] = {}
        self.calls: list[tuple[str | None, str]] = []
        self._address_counter = 0

    def scoped(self, wallet: str | None) -> FakeGateway:
        return FakeGateway(self, wallet)

    @property
    def tip_height(self) -> int:
        return len(self.block_hashes) - 1

    def record(self, wallet: str | None, method: str) -> None:
        self.calls.append((wallet, method))

    def require_wallet(self, wallet: str | None, method: str) -> str:
        if wallet is None or wallet not in self.loaded:
            raise NodeRPCError(method, -18, "Requested wallet does not exist or is not loaded")
        return wallet

    def new_address(self, wallet: str) -> str:
        self._address_counter += 1
        address = f"bcrt1q{wallet.lower()}{self._address_counter:04d}"
        self.address_owner[address] = wallet
        return address

    def confirmations(self, txid: str) -> int:
        if txid not in self.tx_height:
            return 0
        return self.tip_height - self.tx_height[txid] + 1

    def spendable_outputs(self, wallet: str) -> list[tuple[str, int, Decimal]]:
        outputs = []
        for txid, tx in self.transactions.items():
            if txid not in self.tx_height:
                continue
            is_coinbase = "coinbase" in tx["vin"][0]
            if is_coinbase and self.confirmations(txid) <= self.maturity:
                continue
            for vout in tx["vout"]:
                address = vout["scriptPubKey"].get("address")
                if self.address_owner.get(address) != wallet:
                    continue
                if (txid, vout["n"]) in self.spent:
                    continue
                outputs.append((txid, vout["n"], vout["value"]))
        return outputs

    def mine_block(self, address: str) -> str:
        height = self.tip_height + 1
        block_hash = _hash("block", height)
        coinbase_txid = _hash("coinbase", height)
        self.transactions[coinbase_txid] = make_tx(
            coinbase_txid,
            [{"coinbase": f"{height:02x}", "sequence": 4294967295}],
            [make_vout(0, str(self.SUBSIDY), address)],
            blockhash=None,
        )
        owner = self.address_owner.get(address)
        if owner:
            self.wallet_txids.setdefault(owner, set()).add(coinbase_txid)
        self.block_hashes.append(block_hash)
        for txid in [coinbase_txid, *self.mempool]:
            self.tx_height[txid] = height
            self.transactions[txid]["blockhash"] = block_hash
        self.mempool = []
        return block_hash

    def send(self, wallet: str, address: str, amount: Decimal) -> str:
        if not address.startswith("bcrt1"):
            raise NodeRPCError("sendtoaddress", -5, "Invalid Bitcoin address")
        for prev_txid, prev_n, value in self.spendable_outputs(wallet):
            if value >= amount + self.FEE:
                break
        else:
            raise NodeRPCError("sendtoaddress", -6, "Insufficient funds")

        change_address = self.new_address(wallet)
        change = value - amount - self.FEE
        txid = _hash("tx", prev_txid, prev_n, address)
        self.transactions[txid] = make_tx(
            txid,
            [{"txid": prev_txid, "vout": prev_n, "sequence": 4294967293}],
            [make_vout(0, str(amount), address), make_vout(1, str(change), change_address)],
            blockhash=None,
        )
        self.spent.add((prev_txid, prev_n))
        self.mempool.append(txid)
        self.wallet_txids.setdefault(wallet, set()).add(txid)
        receiver = self.address_owner.get(address)
        if receiver:
            self.wallet_txids.setdefault(receiver, set()).add(txid)
        return txid


class FakeGateway:
    """NodeGateway-compatible view of a FakeRegtestNode, optionally wallet scoped."""

    def __init__(self, node: FakeRegtestNode, wallet: str | None = None):
        self.node = node
        self.wallet = wallet

    def for_wallet(self, name: str) -> FakeGateway:
        return FakeGateway(self.node, name)

    def get_blockchain_info(self) -> dict[str, Any]:
        self.node.record(self.wallet, "getblockchaininfo")
        return {"chain": "regtest", "blocks": self.node.tip_height}

    def list_wallet_dir(self) -> list[str]:
        self.node.record(self.wallet, "listwalletdir")
        return sorted(self.node.wallet_dir)

    def list_wallets(self) -> list[str]:
        self.node.record(self.wallet, "listwallets")
        return sorted(self.node.loaded)

    def create_wallet(self, name: str) -> dict[str, Any]:
        self.node.record(self.wallet, "createwallet")
        if name in self.node.wallet_dir:
            raise NodeRPCError("createwallet", -4, f"Wallet file verification failed. {name}")
        self.node.wallet_dir.add(name)
        self.node.loaded.add(name)
        return {"name": name}

    def load_wallet(self, name: str) -> dict[str, Any]:
        self.node.record(self.wallet, "loadwallet")
        if name in self.node.loaded:
            raise NodeRPCError("loadwallet", -35, f"Wallet {name} is already loaded.")
        self.node.loaded.add(name)
        return {"name": name}

    def get_new_address(self, label: str = "") -> str:
        self.node.record(self.wallet, "getnewaddress")
        wallet = self.node.require_wallet(self.wallet, "getnewaddress")
        return self.node.new_address(wallet)

    def validate_address(self, address: str) -> dict[str, Any]:
        self.node.record(self.wallet, "validateaddress")
        if address.startswith("bcrt1"):
            return {"isvalid": True, "address": address}
        return {"isvalid": False, "error": "Invalid or unsupported Segwit (Bech32) encoding."}

    def generate_to_address(self, n_blocks: int, address: str) -> list[str]:
        self.node.record(self.wallet, "generatetoaddress")
        return [self.node.mine_block(address) for _ in range(n_blocks)]

    def get_block_count(self) -> int:
        self.node.record(self.wallet, "getblockcount")
        return self.node.tip_height

    def get_block_hash(self, height: int) -> str:
        self.node.record(self.wallet, "getblockhash")
        return self.node.block_hashes[height]

    def get_block_header(self, block_hash: str) -> dict[str, Any]:
        self.node.record(self.wallet, "getblockheader")
        return {"hash": block_hash, "height": self.node.block_hashes.index(block_hash)}

    def get_balance(self) -> Decimal:
        self.node.record(self.wallet, "getbalance")
        wallet = self.node.require_wallet(self.wallet, "getbalance")
        return sum((v for _, _, v in self.node.spendable_outputs(wallet)), Decimal("0"))

    def send_to_address(self, address: str, amount: Decimal) -> str:
        self.node.record(self.wallet, "sendtoaddress")
        wallet = self.node.require_wallet(self.wallet, "sendtoaddress")
        return self.node.send(wallet, address, Decimal(amount))

    def get_mempool_entry(self, txid: str) -> dict[str, Any]:
        self.node.record(self.wallet, "getmempoolentry")
        if txid not in self.node.mempool:
            raise NodeRPCError("getmempoolentry", -5, "Transaction not in mempool")
        return {"vsize": 141, "fees": {"base": self.node.FEE}}

    def get_raw_transaction(self, txid: str, verbose: bool = True) -> dict[str, Any]:
        self.node.record(self.wallet, "getrawtransaction")
        if txid not in self.node.transactions:
            raise NodeRPCError(
                "getrawtransaction", -5, "No such mempool or blockchain transaction"
            )
        tx = copy.deepcopy(self.node.transactions[txid])
        tx["confirmations"] = self.node.confirmations(txid)
        return tx

    def get_transaction(self, txid: str) -> dict[str, Any]:
        self.node.record(self.wallet, "gettransaction")
        wallet = self.node.require_wallet(self.wallet, "gettransaction")
        if txid not in self.node.wallet_txids.get(wallet, set()):
            raise NodeRPCError("gettransaction", -5, "Invalid or non-wallet transaction id")
        result: dict[str, Any] = {"txid": txid, "confirmations": self.node.confirmations(txid)}
        tx = self.node.transactions[txid]
        if "coinbase" not in tx["vin"][0]:
            result["fee"] = -self.node.FEE
        if txid in self.node.tx_height:
            result["blockhash"] = tx["blockhash"]
            result["blockheight"] = self.node.tx_height[txid]
        return result

    def close(self) -> None:
        pass

    def __enter__(self) -> FakeGateway:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@pytest.fixture
def regtest_node() -> FakeRegtestNode:
    return FakeRegtestNode()


@pytest.fixture
def gateway(regtest_node: FakeRegtestNode) -> FakeGateway:
    return regtest_node.scoped(None)
