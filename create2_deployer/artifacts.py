"""Read compiled contract bytecode from Foundry build output.

Forge writes one JSON file per contract to ``out/<File>.sol/<Name>.json``.
We are only interested in the creation bytecode (``bytecode.object``)
and, for code hash checks, the runtime bytecode (``deployedBytecode.object``).
"""

import json
import logging
from functools import lru_cache
from pathlib import Path

from hexbytes import HexBytes

from create2_deployer.exceptions import ArtifactNotFoundError

logger = logging.getLogger(__name__)


def get_artifact_path(artifacts_dir: Path, contract_name: str, source_file: str | None = None) -> Path:
    """Resolve a Forge artifact path.

    :param source_file:
        Solidity source file name if it differs from the contract name,
        e.g. ``ERC1967Proxy.sol``.
    """
    if source_file is None:
        source_file = f"{contract_name}.sol"
    return Path(artifacts_dir) / source_file / f"{contract_name}.json"


@lru_cache(maxsize=32)
def _load_artifact(path: Path) -> dict:
    try:
        with open(path, "rt", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ArtifactNotFoundError(f"Contract artifact missing: {path}. Did you run forge build?") from e
    except json.JSONDecodeError as e:
        raise ArtifactNotFoundError(f"Contract artifact is not valid JSON: {path}") from e


def _read_bytecode_field(artifact: dict, key: str, path: Path) -> HexBytes:
    bytecode = artifact.get(key)

    if type(bytecode) == dict:
        # Sol 0.8 / Forge
        # Contains keys object, sourceMap, linkReferences
        bytecode = bytecode.get("object")

    if not bytecode or bytecode == "0x":
        raise ArtifactNotFoundError(f"Artifact {path} has no {key}, is the contract abstract?")

    if "__$" in bytecode:
        raise ArtifactNotFoundError(f"Artifact {path} {key} has unlinked library references")

    return HexBytes(bytecode)


def load_creation_bytecode(artifacts_dir: Path, contract_name: str, source_file: str | None = None) -> HexBytes:
    """Load contract creation bytecode from a Forge artifact.

    Example:

    .. code-block:: python

        proxy_bytecode = load_creation_bytecode(Path("out"), "ERC1967Proxy")

    :raise ArtifactNotFoundError:
        File missing, malformed or has no bytecode
    """
    path = get_artifact_path(artifacts_dir, contract_name, source_file)
    bytecode = _read_bytecode_field(_load_artifact(path), "bytecode", path)
    logger.debug("Loaded %s creation bytecode, %d bytes", contract_name, len(bytecode))
    return bytecode


def load_runtime_bytecode(artifacts_dir: Path, contract_name: str, source_file: str | None = None) -> HexBytes:
    """Load contract runtime bytecode from a Forge artifact.

    .. note ::

        Contracts with immutables have placeholder zeroes in the artifact,
        so the runtime code on-chain will differ.
    """
    path = get_artifact_path(artifacts_dir, contract_name, source_file)
    return _read_bytecode_field(_load_artifact(path), "deployedBytecode", path)
