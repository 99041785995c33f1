"""CREATE2 address prediction.

The address of a contract created with ``CREATE2`` does not depend on the
deployer nonce, so it can be computed before anything is broadcasted:

.. code-block:: text

    address = keccak256(0xff ++ factory ++ salt ++ keccak256(init_code))[12:]

See `EIP-1014 <https://eips.ethereum.org/EIPS/eip-1014>`__.

Example:

.. code-block:: python

    from create2_deployer.create2 import DETERMINISTIC_DEPLOYMENT_PROXY, encode_salt, predict_create2_address

    address = predict_create2_address(DETERMINISTIC_DEPLOYMENT_PROXY, encode_salt(1), init_code)
"""

from eth_typing import ChecksumAddress, HexAddress
from eth_utils import keccak, to_canonical_address, to_checksum_address

#: Nick's deterministic deployment proxy.
#:
#: Deployed at the same address on all major EVM chains.
#: The call data is ``salt (32 bytes) ++ init code``.
#:
#: `See the repository <https://github.com/Arachnid/deterministic-deployment-proxy>`__.
DETERMINISTIC_DEPLOYMENT_PROXY: ChecksumAddress = to_checksum_address("0x4e59b44847b379578588920cA78FbF26c0B4956C")

#: CREATE2 salts are always a full EVM word
SALT_LENGTH = 32

_CREATE2_PREFIX = b"\xff"


def encode_salt(counter: int) -> bytes:
    """Turn a step counter to a 32 bytes big-endian salt."""
    assert type(counter) is int, f"Salt counter must be int, got {type(counter)}"
    if counter < 0 or counter >= 2 ** (8 * SALT_LENGTH):
        raise ValueError(f"Salt counter out of range: {counter}")
    return counter.to_bytes(SALT_LENGTH, "big")


def predict_create2_address(
    factory: HexAddress | str,
    salt: bytes,
    init_code: bytes,
) -> ChecksumAddress:
    """Compute the address where ``factory`` will create ``init_code`` with ``salt``.

    - No network access

    - Same inputs always give the same address

    :param factory:
        The contract executing ``CREATE2``

    :param salt:
        32 bytes salt

    :param init_code:
        Creation bytecode, including any appended constructor arguments

    :return:
        Checksummed address
    """
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")

    if not init_code:
        raise ValueError("Cannot predict an address for empty init code")

    preimage = _CREATE2_PREFIX + to_canonical_address(factory) + bytes(salt) + keccak(bytes(init_code))
    return to_checksum_address(keccak(preimage)[12:])


def encode_factory_call(salt: bytes, init_code: bytes) -> bytes:
    """Build the call data for the deterministic deployment proxy.

    The factory reads the first 32 bytes as the salt and creates the rest.
    """
    assert len(salt) == SALT_LENGTH, f"Bad salt length {len(salt)}"
    return bytes(salt) + bytes(init_code)
