"""Web3 backed chain reader."""

import datetime
from unittest.mock import Mock

import pytest
import requests
from hexbytes import HexBytes
from web3.exceptions import ContractLogicError, TimeExhausted

from create2_deployer.exceptions import ChainReadError, DeploymentError, ReceiptTimeoutError
from create2_deployer.reader import ReceiptStatus, Web3ChainReader

ADDRESS = "0x4e59b44847b379578588920cA78FbF26c0B4956C"

TX_HASH = HexBytes("0x" + "12" * 32)


@pytest.fixture()
def web3() -> Mock:
    web3 = Mock()
    web3.eth.chain_id = 8453
    return web3


def test_balance_and_code(web3):
    web3.eth.get_balance.return_value = 10**18
    web3.eth.get_code.return_value = HexBytes("0x6080")
    reader = Web3ChainReader(web3)

    assert reader.get_balance(ADDRESS.lower()) == 10**18
    web3.eth.get_balance.assert_called_once_with(ADDRESS)

    code = reader.get_code(ADDRESS)
    assert code == b"\x60\x80"
    assert type(code) is bytes


def test_empty_code(web3):
    web3.eth.get_code.return_value = HexBytes("0x")
    assert Web3ChainReader(web3).get_code(ADDRESS) == b""


@pytest.mark.parametrize("raw_status,status", [(1, ReceiptStatus.success), (0, ReceiptStatus.reverted)])
def test_receipt_status(web3, raw_status, status):
    web3.eth.wait_for_transaction_receipt.return_value = {"status": raw_status, "blockNumber": 100, "gasUsed": 21_000}
    reader = Web3ChainReader(web3, poll_latency=datetime.timedelta(seconds=0.5))

    receipt = reader.get_receipt(TX_HASH, datetime.timedelta(seconds=120))

    assert receipt.status == status
    assert receipt.block_number == 100
    assert receipt.gas_used == 21_000
    web3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HASH, timeout=120.0, poll_latency=0.5)


def test_receipt_timeout(web3):
    web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
    reader = Web3ChainReader(web3)

    with pytest.raises(ReceiptTimeoutError) as exc_info:
        reader.get_receipt(TX_HASH, datetime.timedelta(seconds=1))

    assert exc_info.value.tx_hash == TX_HASH


def test_call(web3):
    web3.eth.call.return_value = HexBytes("0x" + "00" * 32)
    result = Web3ChainReader(web3).call(ADDRESS, bytes.fromhex("8da5cb5b"))
    assert result == b"\x00" * 32
    web3.eth.call.assert_called_once_with({"to": ADDRESS, "data": HexBytes("0x8da5cb5b")})


def test_call_reverts(web3):
    """owner() on a contract without it reverts, which reads as no result."""
    web3.eth.call.side_effect = ContractLogicError("execution reverted")
    assert Web3ChainReader(web3).call(ADDRESS, bytes.fromhex("8da5cb5b")) == b""


def test_node_down(web3):
    web3.eth.get_code.side_effect = requests.exceptions.ConnectionError("node down")
    web3.eth.get_balance.side_effect = requests.exceptions.ConnectionError("node down")
    web3.eth.call.side_effect = requests.exceptions.ConnectionError("node down")
    web3.eth.wait_for_transaction_receipt.side_effect = requests.exceptions.ConnectionError("node down")
    reader = Web3ChainReader(web3)

    with pytest.raises(ChainReadError):
        reader.get_code(ADDRESS)

    with pytest.raises(ChainReadError):
        reader.get_balance(ADDRESS)

    with pytest.raises(ChainReadError):
        reader.call(ADDRESS, b"")

    with pytest.raises(ChainReadError) as exc_info:
        reader.get_receipt(TX_HASH, datetime.timedelta(seconds=1))
    assert "0x" + "12" * 32 in str(exc_info.value)
    assert isinstance(exc_info.value, DeploymentError)


def test_timeout_message_has_prefixed_hash(web3):
    web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
    with pytest.raises(ReceiptTimeoutError) as exc_info:
        Web3ChainReader(web3).get_receipt(TX_HASH, datetime.timedelta(seconds=1))
    assert "0x" + "12" * 32 in str(exc_info.value)
