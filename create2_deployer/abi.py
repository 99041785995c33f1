"""ABI encoding helpers for proxy deployments.

- Initializer call data passed to the proxy constructor

- Proxy init code with ABI-encoded constructor arguments

- Decoding ``owner()`` results
"""

from typing import Sequence

import eth_abi
from eth_typing import ChecksumAddress, HexAddress
from eth_utils import to_checksum_address
from web3 import Web3

#: OpenZeppelin upgradeable contracts take the owner in their initializer
DEFAULT_INITIALIZER = "initialize(address)"


def get_function_selector(function_signature: str) -> bytes:
    """First 4 bytes of the keccak hash of a Solidity function signature.

    Example:

    .. code-block:: python

        assert get_function_selector("owner()").hex() == "8da5cb5b"
    """
    return Web3.keccak(text=function_signature)[0:4]


#: ``Ownable.owner()``
OWNER_SELECTOR = get_function_selector("owner()")


def encode_with_signature(function_signature: str, args: Sequence) -> bytes:
    """Mimic Solidity's abi.encodeWithSignature() in Python.

    Example:

    .. code-block:: python

            payload = encode_with_signature("initialize(address)", [owner])
            assert len(payload) == 4 + 32

    :param function_signature:
        Solidity function signature that can be hashed to a selector.

        ABI types are extracted from this signature.

    :param args:
        Argument values to be encoded.
    """

    assert type(args) in (tuple, list)

    selector_text = function_signature[function_signature.find("(") + 1 : function_signature.rfind(")")]
    arg_types = [t for t in selector_text.split(",") if t]
    assert len(arg_types) == len(args), f"{function_signature} takes {len(arg_types)} arguments, got {len(args)}"
    encoded_args = eth_abi.encode(arg_types, args)
    return get_function_selector(function_signature) + encoded_args


def encode_initializer_call(owner: HexAddress | str, function_signature: str = DEFAULT_INITIALIZER) -> bytes:
    """Call data for a single address argument initializer.

    The proxy constructor delegatecalls this into the implementation,
    so the proxy storage gets its owner set atomically with the deployment.

    :return:
        4 bytes selector followed by the left-padded owner address
    """
    return encode_with_signature(function_signature, [to_checksum_address(owner)])


def encode_proxy_init_code(
    proxy_bytecode: bytes,
    implementation: HexAddress | str,
    initializer_call_data: bytes,
) -> bytes:
    """Build init code for an ERC-1967 proxy.

    ``ERC1967Proxy`` constructor is ``constructor(address implementation, bytes memory _data)``,
    constructor arguments are appended ABI-encoded after the creation bytecode.

    Any byte difference here changes the predicted proxy address.
    """
    assert proxy_bytecode, "Proxy creation bytecode missing"
    constructor_args = eth_abi.encode(
        ["address", "bytes"],
        [to_checksum_address(implementation), bytes(initializer_call_data)],
    )
    return bytes(proxy_bytecode) + constructor_args


def decode_address_result(data: bytes) -> ChecksumAddress | None:
    """Decode the return value of a view function returning ``address``.

    :return:
        Checksummed address or ``None`` if the call returned nothing,
        e.g. there is no such function.
    """
    if len(data) < 32:
        return None
    (value,) = eth_abi.decode(["address"], bytes(data[0:32]))
    return to_checksum_address(value)
