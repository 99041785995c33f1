"""Execute a single CREATE2 deployment step.

A step is *satisfied* when its predicted address has code, no matter
which run put it there. This makes re-running a half-finished deployment
safe: finished steps are skipped and no transaction is sent for them.
"""

import datetime
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from eth_typing import ChecksumAddress, HexAddress
from eth_utils import encode_hex, keccak, to_checksum_address
from hexbytes import HexBytes

from create2_deployer.create2 import SALT_LENGTH, encode_factory_call, predict_create2_address
from create2_deployer.exceptions import (
    AddressCollisionError,
    CodeNotFoundError,
    ReceiptTimeoutError,
    RevertedTransactionError,
)
from create2_deployer.reader import ChainReader, ReceiptStatus
from create2_deployer.submitter import TransactionSubmitter

logger = logging.getLogger(__name__)

#: How long we wait for a deployment to be mined
DEFAULT_RECEIPT_TIMEOUT = datetime.timedelta(seconds=120)

#: Pauses before the two code presence checks after a successful receipt.
#:
#: Load balanced RPC endpoints may serve ``eth_getCode`` from a node
#: that has not yet seen the block with our receipt.
DEFAULT_CODE_CHECK_DELAYS = (datetime.timedelta(seconds=3), datetime.timedelta(seconds=5))


@dataclass(frozen=True, slots=True)
class DeploymentStep:
    """One contract to be created through the CREATE2 factory.

    The predicted address is derived when the step is created.
    """

    #: Human readable name, e.g. ``BuyrToken proxy``
    label: str

    #: Creation bytecode + constructor arguments
    init_code: bytes

    #: 32 bytes salt
    salt: bytes

    #: CREATE2 factory executing the deployment
    factory: ChecksumAddress

    #: Zero-based index of this step in its plan
    position: int = 0

    #: If set, existing code at the predicted address must hash to this
    expected_code_hash: bytes | None = None

    predicted_address: ChecksumAddress = field(init=False)

    def __post_init__(self):
        assert len(self.salt) == SALT_LENGTH, f"Bad salt {self.salt!r}"
        object.__setattr__(self, "predicted_address", predict_create2_address(self.factory, self.salt, self.init_code))

    def __repr__(self):
        return f"<DeploymentStep #{self.position} {self.label} at {self.predicted_address}>"

    @property
    def salt_counter(self) -> int:
        """The salt as an integer, for logging."""
        return int.from_bytes(self.salt, "big")


class DeploymentStatus(enum.Enum):
    """How a step got satisfied."""

    #: We broadcasted a transaction and confirmed the code
    deployed = "deployed"

    #: Code was already there, nothing sent
    already_deployed = "already_deployed"

    #: Dry run, nothing sent
    simulated = "simulated"


@dataclass(frozen=True, slots=True)
class DeployedContract:
    """Result of one executed step.

    ``address`` is authoritative for ``deployed`` and ``already_deployed``,
    for ``simulated`` it is only a prediction.
    """

    label: str

    address: ChecksumAddress

    status: DeploymentStatus

    salt: bytes

    position: int

    #: For proxies, the implementation they point to
    implementation_address: ChecksumAddress | None = None

    #: Set when we sent a transaction
    tx_hash: HexBytes | None = None


class StepExecutor:
    """Predict, check, submit and confirm one deployment step.

    Example:

    .. code-block:: python

        executor = StepExecutor(
            reader=Web3ChainReader(web3),
            submitter=HotWalletSubmitter(web3, wallet),
            deployer=wallet.address,
        )
        deployed = executor.execute(step)
        assert deployed.address == step.predicted_address

    :param sleep:
        Blocking sleep function taking seconds.
        Replace in tests.
    """

    def __init__(
        self,
        reader: ChainReader,
        submitter: TransactionSubmitter,
        deployer: HexAddress | str,
        receipt_timeout: datetime.timedelta = DEFAULT_RECEIPT_TIMEOUT,
        code_check_delays: tuple[datetime.timedelta, ...] = DEFAULT_CODE_CHECK_DELAYS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        assert isinstance(receipt_timeout, datetime.timedelta)
        assert len(code_check_delays) > 0, "Need at least one code presence check"
        self.reader = reader
        self.submitter = submitter
        self.deployer = to_checksum_address(deployer)
        self.receipt_timeout = receipt_timeout
        self.code_check_delays = code_check_delays
        self.sleep = sleep

    def execute(self, step: DeploymentStep, dry_run: bool = False, implementation_address: HexAddress | None = None) -> DeployedContract:
        """Run one step.

        :param dry_run:
            Only predict, never broadcast

        :param implementation_address:
            Passed through to the result for proxy steps

        :raise DeploymentError:
            Any failure, the step must be considered not done
        """
        address = step.predicted_address

        def _result(status: DeploymentStatus, tx_hash: HexBytes | None = None) -> DeployedContract:
            return DeployedContract(
                label=step.label,
                address=address,
                status=status,
                salt=step.salt,
                position=step.position,
                implementation_address=implementation_address,
                tx_hash=tx_hash,
            )

        existing_code = self.reader.get_code(address)
        if existing_code:
            self._check_existing_code(step, existing_code)
            logger.info("%s already deployed at %s, skipping", step.label, address)
            return _result(DeploymentStatus.already_deployed)

        if dry_run:
            logger.info("[DRY RUN] Would deploy %s to %s with salt %d", step.label, address, step.salt_counter)
            return _result(DeploymentStatus.simulated)

        logger.info("Deploying %s to %s with salt %d, init code %d bytes", step.label, address, step.salt_counter, len(step.init_code))

        tx_hash = self.submitter.send(
            self.deployer,
            step.factory,
            encode_factory_call(step.salt, step.init_code),
            0,
        )

        receipt = self.reader.get_receipt(tx_hash, self.receipt_timeout)

        if receipt.status == ReceiptStatus.reverted:
            raise RevertedTransactionError(tx_hash, f"{step.label} deployment reverted: {encode_hex(tx_hash)}")

        if receipt.status != ReceiptStatus.success:
            raise ReceiptTimeoutError(tx_hash, f"{step.label} deployment still pending after {self.receipt_timeout}: {encode_hex(tx_hash)}")

        self._wait_code(step, tx_hash)

        logger.info("Deployed %s at %s, tx %s", step.label, address, encode_hex(tx_hash))
        return _result(DeploymentStatus.deployed, tx_hash)

    def _wait_code(self, step: DeploymentStep, tx_hash: HexBytes):
        """Bounded wait for the node to serve the new code."""
        for attempt, delay in enumerate(self.code_check_delays, start=1):
            self.sleep(delay.total_seconds())
            if self.reader.get_code(step.predicted_address):
                return
            logger.info("No code yet at %s after check %d/%d", step.predicted_address, attempt, len(self.code_check_delays))

        raise CodeNotFoundError(f"{step.label} deployment succeeded (tx {encode_hex(tx_hash)}) but no code at {step.predicted_address}")

    def _check_existing_code(self, step: DeploymentStep, code: bytes):
        if step.expected_code_hash is None:
            return
        code_hash = keccak(code)
        if code_hash != step.expected_code_hash:
            raise AddressCollisionError(f"{step.predicted_address} has code with hash {encode_hex(code_hash)}, expected {encode_hex(step.expected_code_hash)} for {step.label}")
