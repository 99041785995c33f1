"""create2_deployer package root.

Deterministic, idempotent deployment of implementation + proxy contract pairs
through a CREATE2 factory.

- Predict addresses with :py:mod:`create2_deployer.create2`

- Build ordered steps with :py:mod:`create2_deployer.plan`

- Run them with :py:mod:`create2_deployer.orchestrator`

"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"create2-deployer needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
