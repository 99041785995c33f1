"""Run a deployment plan end to end.

- Steps run strictly one after another, a proxy needs the address of
  its implementation

- The first failing step aborts the rest of the plan with :py:class:`PlanAborted`

- After a live run, check every proxy reports the expected owner

- Account for the gas spent by the run
"""

import logging
import warnings
from dataclasses import dataclass, field

from eth_typing import ChecksumAddress, HexAddress
from eth_utils import to_checksum_address
from requests.exceptions import RequestException
from web3.exceptions import Web3Exception

from create2_deployer.abi import OWNER_SELECTOR, decode_address_result
from create2_deployer.exceptions import (
    DeploymentError,
    OwnershipMismatchWarning,
    PlanAborted,
    UnfundedDeployerError,
)
from create2_deployer.executor import DeployedContract, DeploymentStatus, DeploymentStep, StepExecutor
from create2_deployer.plan import DeploymentPlan
from create2_deployer.reader import ChainReader

logger = logging.getLogger(__name__)

#: Step failures, node errors included when a reader does not wrap them
_STEP_ERRORS = (DeploymentError, Web3Exception, RequestException)


@dataclass(frozen=True, slots=True)
class OwnershipCheck:
    """Post-deployment ``owner()`` check of a proxy."""

    contract_address: ChecksumAddress

    expected_owner: ChecksumAddress

    #: ``None`` if the contract did not return an address
    actual_owner: ChecksumAddress | None

    @property
    def matches(self) -> bool:
        return self.actual_owner is not None and self.actual_owner.lower() == self.expected_owner.lower()


@dataclass(slots=True)
class DeploymentReport:
    """What a run did."""

    deployer: ChecksumAddress

    owner: ChecksumAddress

    dry_run: bool

    #: Balance of the deployer before the first step, in wei
    balance_before: int

    #: Balance of the deployer after the last step, in wei
    balance_after: int | None = None

    #: Results in plan order
    contracts: list[DeployedContract] = field(default_factory=list)

    ownership_checks: list[OwnershipCheck] = field(default_factory=list)

    @property
    def gas_spent(self) -> int | None:
        """Native currency consumed by the run, in wei."""
        if self.balance_after is None:
            return None
        return self.balance_before - self.balance_after

    @property
    def transactions_sent(self) -> int:
        return sum(1 for c in self.contracts if c.status == DeploymentStatus.deployed)

    @property
    def ownership_ok(self) -> bool:
        return all(c.matches for c in self.ownership_checks)

    def get_contract(self, label: str) -> DeployedContract:
        """Find a step result by its label."""
        for c in self.contracts:
            if c.label == label:
                return c
        raise KeyError(f"No deployed contract labelled {label}")

    def get_proxies(self) -> list[DeployedContract]:
        return [c for c in self.contracts if c.implementation_address is not None]


class Orchestrator:
    """Drive a :py:class:`DeploymentPlan` through a :py:class:`StepExecutor`.

    Example:

    .. code-block:: python

        orchestrator = Orchestrator(plan, executor, reader, deployer=wallet.address)
        report = orchestrator.run(dry_run=False)
        for contract in report.contracts:
            print(contract.label, contract.address, contract.status.name)

    Running the same plan again sends no transactions and returns the same addresses.
    """

    def __init__(
        self,
        plan: DeploymentPlan,
        executor: StepExecutor,
        reader: ChainReader,
        deployer: HexAddress | str,
    ):
        self.plan = plan
        self.executor = executor
        self.reader = reader
        self.deployer = to_checksum_address(deployer)

    def run(self, dry_run: bool = False) -> DeploymentReport:
        """Execute all steps in order.

        :raise UnfundedDeployerError:
            Live run with an empty deployer account, nothing was attempted

        :raise PlanAborted:
            A step failed, see the exception for the completed steps
        """
        balance_before = self.reader.get_balance(self.deployer)
        logger.info("Deployer %s balance %s wei, %s", self.deployer, f"{balance_before:,}", self.plan)

        if balance_before == 0 and not dry_run:
            raise UnfundedDeployerError(f"Deployer {self.deployer} has 0 balance. Fund the wallet before deploying.")

        report = DeploymentReport(
            deployer=self.deployer,
            owner=self.plan.owner,
            dry_run=dry_run,
            balance_before=balance_before,
        )

        total = len(self.plan)
        for index in range(len(self.plan.contracts)):
            implementation_step = self.plan.build_implementation_step(index)
            implementation = self._execute(implementation_step, report, total, dry_run)

            proxy_step = self.plan.build_proxy_step(index, implementation.address)
            self._execute(proxy_step, report, total, dry_run, implementation_address=implementation.address)

        if not dry_run:
            report.ownership_checks = self.check_ownership(report.get_proxies())

        report.balance_after = self.reader.get_balance(self.deployer)
        logger.info("Run complete, %d transactions sent, gas spent %s wei", report.transactions_sent, f"{report.gas_spent:,}")
        return report

    def _execute(
        self,
        step: DeploymentStep,
        report: DeploymentReport,
        total: int,
        dry_run: bool,
        implementation_address: ChecksumAddress | None = None,
    ) -> DeployedContract:
        logger.info("Step %d/%d: %s", step.position + 1, total, step.label)
        try:
            deployed = self.executor.execute(step, dry_run=dry_run, implementation_address=implementation_address)
        except _STEP_ERRORS as e:
            logger.error("Step %d/%d %s failed, %d earlier steps completed", step.position + 1, total, step.label, len(report.contracts))
            raise PlanAborted(step, list(report.contracts), e) from e
        report.contracts.append(deployed)
        return deployed

    def check_ownership(self, proxies: list[DeployedContract]) -> list[OwnershipCheck]:
        """Read ``owner()`` of every proxy and compare to the plan owner.

        Mismatches are warnings, the contracts are already deployed.
        """
        checks = []
        for proxy in proxies:
            try:
                actual = decode_address_result(self.reader.call(proxy.address, OWNER_SELECTOR))
            except _STEP_ERRORS as e:
                logger.warning("Could not read owner() of %s at %s: %s", proxy.label, proxy.address, e)
                actual = None
            check = OwnershipCheck(
                contract_address=proxy.address,
                expected_owner=self.plan.owner,
                actual_owner=actual,
            )
            if check.matches:
                logger.info("%s owner is %s", proxy.label, actual)
            else:
                msg = f"{proxy.label} at {proxy.address} owner mismatch: expected {self.plan.owner}, got {actual}"
                logger.warning(msg)
                warnings.warn(msg, OwnershipMismatchWarning, stacklevel=2)
            checks.append(check)
        return checks
