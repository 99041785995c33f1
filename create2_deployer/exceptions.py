"""Error kinds raised during a deployment run.

Everything derives from :py:class:`DeploymentError` so callers can catch a
failed run with a single ``except``, while still telling apart a timed out
receipt from a reverted transaction.
"""

from hexbytes import HexBytes


class DeploymentError(Exception):
    """Base class for all deployment failures."""


class ConfigurationError(DeploymentError):
    """Unknown network, missing credentials or otherwise broken setup.

    Raised before any step is executed.
    """


class ArtifactNotFoundError(ConfigurationError):
    """Compiled contract artifact missing or has no creation bytecode."""


class UnfundedDeployerError(ConfigurationError):
    """Deployer account has no native currency to pay for gas."""


class ChainReadError(DeploymentError):
    """The node failed to answer a read request."""


class SubmissionError(DeploymentError):
    """The signer or the node refused to broadcast our transaction.

    Funds or payload problems must be fixed manually, we never retry.
    """


class _TransactionError(DeploymentError):
    def __init__(self, tx_hash: HexBytes | None, msg: str):
        super().__init__(msg)
        self.tx_hash = tx_hash


class ReceiptTimeoutError(_TransactionError):
    """We did not see a receipt for a broadcasted transaction in time.

    The transaction may still get mined later, so this is not a revert.
    """


class RevertedTransactionError(_TransactionError):
    """Deployment transaction was mined, but reverted."""


class CodeNotFoundError(DeploymentError):
    """Receipt reported success, but the predicted address still has no code."""


class AddressCollisionError(DeploymentError):
    """The predicted address holds code that is not what the step deploys."""


class PlanAborted(DeploymentError):
    """A step failed and the rest of the plan was not attempted.

    - :py:attr:`step` is the failing step

    - :py:attr:`completed` lists the results of the steps before it,
      they are still valid on-chain and will be skipped on a rerun

    - :py:attr:`error` is the original failure, also available as ``__cause__``
    """

    def __init__(self, step, completed: list, error: Exception):
        super().__init__(f"Step {step.position + 1} ({step.label}) failed: {error}")
        self.step = step
        self.completed = completed
        self.error = error


class OwnershipMismatchWarning(UserWarning):
    """A deployed proxy reports a different owner than we initialised it with."""
