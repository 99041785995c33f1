"""Read-only access to the chain.

The orchestrator only needs four questions answered by a node:
balance, code, receipt and a view call. :py:class:`ChainReader` is the
narrow interface for these, so the deployment logic can be tested against
an in-memory chain. :py:class:`Web3ChainReader` is the real implementation.
"""

import datetime
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from eth_typing import HexAddress
from eth_utils import encode_hex, to_checksum_address
from hexbytes import HexBytes
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from create2_deployer.exceptions import ChainReadError, ReceiptTimeoutError

logger = logging.getLogger(__name__)

#: Transport and JSON-RPC failures of a read
_NODE_ERRORS = (Web3Exception, RequestException)


class ReceiptStatus(enum.Enum):
    """Outcome of a transaction."""

    success = "success"

    reverted = "reverted"

    #: Not yet included in a block
    pending = "pending"


@dataclass(frozen=True, slots=True)
class Receipt:
    """The parts of a transaction receipt we care about."""

    tx_hash: HexBytes

    status: ReceiptStatus

    block_number: int | None = None

    gas_used: int | None = None


class ChainReader(ABC):
    """Read-only facade over a blockchain node.

    All methods are idempotent from the deployer's point of view.
    Node failures are raised as :py:class:`ChainReadError`.
    """

    @abstractmethod
    def get_balance(self, address: HexAddress | str) -> int:
        """Native currency balance in wei."""

    @abstractmethod
    def get_code(self, address: HexAddress | str) -> bytes:
        """Runtime code at an address, empty bytes if there is no contract."""

    @abstractmethod
    def get_receipt(self, tx_hash: HexBytes, timeout: datetime.timedelta) -> Receipt:
        """Wait until the transaction is mined.

        :raise ReceiptTimeoutError:
            No receipt within ``timeout``
        """

    @abstractmethod
    def call(self, address: HexAddress | str, data: bytes) -> bytes:
        """Execute a read-only call against the latest block."""


class Web3ChainReader(ChainReader):
    """ChainReader using a web3.py connection."""

    def __init__(self, web3: Web3, poll_latency: datetime.timedelta = datetime.timedelta(seconds=1)):
        assert isinstance(poll_latency, datetime.timedelta)
        self.web3 = web3
        self.poll_latency = poll_latency

    def __repr__(self):
        return f"<Web3ChainReader chain:{self.web3.eth.chain_id}>"

    def get_balance(self, address: HexAddress | str) -> int:
        try:
            return self.web3.eth.get_balance(to_checksum_address(address))
        except _NODE_ERRORS as e:
            raise ChainReadError(f"Could not read balance of {address}: {e}") from e

    def get_code(self, address: HexAddress | str) -> bytes:
        try:
            return bytes(self.web3.eth.get_code(to_checksum_address(address)))
        except _NODE_ERRORS as e:
            raise ChainReadError(f"Could not read code at {address}: {e}") from e

    def get_receipt(self, tx_hash: HexBytes, timeout: datetime.timedelta) -> Receipt:
        assert isinstance(timeout, datetime.timedelta)
        tx_hash = HexBytes(tx_hash)
        try:
            raw_receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=timeout.total_seconds(),
                poll_latency=self.poll_latency.total_seconds(),
            )
        except TimeExhausted as e:
            raise ReceiptTimeoutError(tx_hash, f"No receipt for {encode_hex(tx_hash)} after {timeout}") from e
        except _NODE_ERRORS as e:
            raise ChainReadError(f"Could not read receipt of {encode_hex(tx_hash)}: {e}") from e

        if raw_receipt["status"] == 1:
            status = ReceiptStatus.success
        else:
            status = ReceiptStatus.reverted

        logger.debug("Receipt for %s: %s in block %s", encode_hex(tx_hash), status.name, raw_receipt.get("blockNumber"))

        return Receipt(
            tx_hash=tx_hash,
            status=status,
            block_number=raw_receipt.get("blockNumber"),
            gas_used=raw_receipt.get("gasUsed"),
        )

    def call(self, address: HexAddress | str, data: bytes) -> bytes:
        """Reverting calls return empty bytes, same as calling an address without code."""
        try:
            return bytes(self.web3.eth.call({"to": to_checksum_address(address), "data": HexBytes(data)}))
        except ContractLogicError as e:
            logger.info("Call to %s reverted: %s", address, e)
            return b""
        except _NODE_ERRORS as e:
            raise ChainReadError(f"Call to {address} failed: {e}") from e
