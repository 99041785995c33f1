"""Shared fixtures: an in-memory chain standing in for both the node and the signer."""

import datetime
import json
from pathlib import Path

import eth_abi
import pytest
import requests
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes

from create2_deployer.create2 import predict_create2_address
from create2_deployer.exceptions import ReceiptTimeoutError, SubmissionError
from create2_deployer.executor import StepExecutor
from create2_deployer.plan import DeploymentPlan, ProxiedContract
from create2_deployer.reader import ChainReader, Receipt, ReceiptStatus
from create2_deployer.submitter import TransactionSubmitter

DEPLOYER = to_checksum_address("0x" + "de" * 20)

OWNER = to_checksum_address("0x" + "0e" * 20)

#: What every transaction costs on the fake chain
GAS_PER_TX = 10**15

BUYR_BYTECODE = HexBytes("0x6080604052" + "aa" * 16)

SELLR_BYTECODE = HexBytes("0x6080604052" + "bb" * 16)

PROXY_BYTECODE = HexBytes("0x6080604052" + "cc" * 16)


class FakeChain(ChainReader, TransactionSubmitter):
    """Executes factory calls by writing code at the CREATE2 address.

    Knobs:

    - ``revert_tx``: indexes of sent transactions that revert

    - ``code_lag``: how many reads of a new contract return empty code

    - ``drop_code``: receipts succeed but no code ever appears

    - ``pending``: receipts stay pending

    - ``timeout``: waiting for a receipt times out

    - ``reject``: refuse to broadcast

    - ``owner``: what ``owner()`` returns for every contract

    - ``call_error``: exception raised by every view call

    - ``node_down_after``: code reads after this many raise a connection error
    """

    def __init__(self, balance: int = 10**18, owner: str = OWNER):
        self.balances = {DEPLOYER.lower(): balance}
        self.code: dict[str, bytes] = {}
        self.lagging: dict[str, int] = {}
        self.receipts: dict[bytes, Receipt] = {}
        self.sent: list[tuple[str, str, bytes, int]] = []
        self.code_reads = 0
        self.revert_tx: set[int] = set()
        self.code_lag = 0
        self.drop_code = False
        self.pending = False
        self.timeout = False
        self.reject = False
        self.owner = owner
        self.call_error: Exception | None = None
        self.node_down_after: int | None = None

    def get_balance(self, address) -> int:
        return self.balances.get(address.lower(), 0)

    def get_code(self, address) -> bytes:
        self.code_reads += 1
        if self.node_down_after is not None and self.code_reads > self.node_down_after:
            raise requests.exceptions.ConnectionError("node down")
        key = address.lower()
        if self.lagging.get(key, 0) > 0:
            self.lagging[key] -= 1
            return b""
        return self.code.get(key, b"")

    def get_receipt(self, tx_hash, timeout: datetime.timedelta) -> Receipt:
        if self.timeout:
            raise ReceiptTimeoutError(tx_hash, "timed out")
        return self.receipts[bytes(tx_hash)]

    def call(self, address, data: bytes) -> bytes:
        if self.call_error is not None:
            raise self.call_error
        if not self.code.get(address.lower()):
            return b""
        return eth_abi.encode(["address"], [self.owner])

    def send(self, sender, to, data: bytes, value: int = 0) -> HexBytes:
        if self.reject:
            raise SubmissionError("insufficient funds for gas * price + value")

        index = len(self.sent)
        self.sent.append((sender, to, bytes(data), value))
        tx_hash = HexBytes(keccak(index.to_bytes(32, "big")))
        self.balances[sender.lower()] = self.get_balance(sender) - GAS_PER_TX

        if self.pending:
            self.receipts[bytes(tx_hash)] = Receipt(tx_hash, ReceiptStatus.pending)
            return tx_hash

        if index in self.revert_tx:
            self.receipts[bytes(tx_hash)] = Receipt(tx_hash, ReceiptStatus.reverted, block_number=index + 1)
            return tx_hash

        salt, init_code = data[0:32], data[32:]
        address = predict_create2_address(to, salt, init_code).lower()
        if not self.drop_code:
            # Runtime code only needs to be non-empty
            self.code[address] = b"\x60\x80" + keccak(init_code)
            self.lagging[address] = self.code_lag
        self.receipts[bytes(tx_hash)] = Receipt(tx_hash, ReceiptStatus.success, block_number=index + 1, gas_used=1_000_000)
        return tx_hash

    def get_sent_salts(self) -> list[int]:
        return [int.from_bytes(data[0:32], "big") for _, _, data, _ in self.sent]


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture()
def sleeps() -> list:
    """Records sleep calls instead of sleeping."""
    return []


@pytest.fixture()
def executor(chain, sleeps) -> StepExecutor:
    return StepExecutor(
        reader=chain,
        submitter=chain,
        deployer=DEPLOYER,
        sleep=sleeps.append,
    )


@pytest.fixture()
def plan() -> DeploymentPlan:
    """BuyrToken and SellrToken behind proxies, salts 1-4."""
    return DeploymentPlan(
        proxy_bytecode=PROXY_BYTECODE,
        owner=OWNER,
        contracts=[
            ProxiedContract("BuyrToken", BUYR_BYTECODE),
            ProxiedContract("SellrToken", SELLR_BYTECODE),
        ],
    )


def _write_artifact(artifacts_dir: Path, name: str, bytecode: HexBytes):
    folder = artifacts_dir / f"{name}.sol"
    folder.mkdir(parents=True, exist_ok=True)
    data = {
        "abi": [],
        "bytecode": {"object": "0x" + bytes(bytecode).hex(), "sourceMap": "", "linkReferences": {}},
        "deployedBytecode": {"object": "0x6080", "sourceMap": "", "linkReferences": {}},
    }
    with open(folder / f"{name}.json", "wt", encoding="utf-8") as f:
        json.dump(data, f)


@pytest.fixture()
def artifacts_dir(tmp_path: Path) -> Path:
    """Forge style out/ folder with our three contracts."""
    out = tmp_path / "out"
    _write_artifact(out, "BuyrToken", BUYR_BYTECODE)
    _write_artifact(out, "SellrToken", SELLR_BYTECODE)
    _write_artifact(out, "ERC1967Proxy", PROXY_BYTECODE)
    return out
