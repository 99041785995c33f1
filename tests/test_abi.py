"""Initializer and proxy constructor encoding."""

import eth_abi
import pytest

from create2_deployer.abi import (
    OWNER_SELECTOR,
    decode_address_result,
    encode_initializer_call,
    encode_proxy_init_code,
    encode_with_signature,
    get_function_selector,
)

OWNER = "0x0e0e0e0e0e0e0e0e0e0e0e0e0e0e0e0e0e0e0e0e"

IMPLEMENTATION = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"


def test_well_known_selectors():
    assert get_function_selector("initialize(address)").hex() == "c4d66de8"
    assert get_function_selector("transfer(address,uint256)").hex() == "a9059cbb"
    assert OWNER_SELECTOR.hex() == "8da5cb5b"


def test_initializer_call_data():
    """Selector followed by the owner left-padded to 32 bytes."""
    data = encode_initializer_call(OWNER)
    assert len(data) == 36
    assert data == bytes.fromhex("c4d66de8") + b"\x00" * 12 + bytes.fromhex("0e" * 20)


def test_initializer_custom_signature():
    data = encode_initializer_call(OWNER, "initializeOwner(address)")
    assert data[0:4] == get_function_selector("initializeOwner(address)")
    assert data[4:] == b"\x00" * 12 + bytes.fromhex("0e" * 20)


def test_encode_with_signature_argument_count():
    with pytest.raises(AssertionError):
        encode_with_signature("initialize(address)", [OWNER, OWNER])


def test_encode_with_signature_no_arguments():
    assert encode_with_signature("owner()", []) == OWNER_SELECTOR


def test_proxy_init_code_layout():
    """Creation bytecode, then abi.encode(address, bytes)."""
    proxy_bytecode = bytes.fromhex("6080604052")
    call_data = encode_initializer_call(OWNER)
    init_code = encode_proxy_init_code(proxy_bytecode, IMPLEMENTATION, call_data)

    assert init_code.startswith(proxy_bytecode)
    args = init_code[len(proxy_bytecode) :]

    # address word, bytes offset, bytes length, 36 bytes padded to 64
    assert len(args) == 32 * 5
    assert args[0:32] == b"\x00" * 12 + bytes.fromhex("aa" * 20)
    assert int.from_bytes(args[32:64], "big") == 64
    assert int.from_bytes(args[64:96], "big") == 36
    assert args[96 : 96 + 36] == call_data
    assert args[96 + 36 :] == b"\x00" * 28

    implementation, decoded_call = eth_abi.decode(["address", "bytes"], args)
    assert implementation.lower() == IMPLEMENTATION
    assert decoded_call == call_data


def test_proxy_init_code_depends_on_implementation():
    proxy_bytecode = bytes.fromhex("6080604052")
    call_data = encode_initializer_call(OWNER)
    a = encode_proxy_init_code(proxy_bytecode, IMPLEMENTATION, call_data)
    b = encode_proxy_init_code(proxy_bytecode, "0x" + "00" * 20, call_data)
    assert a != b


def test_decode_address_result():
    data = eth_abi.encode(["address"], [OWNER])
    assert decode_address_result(data).lower() == OWNER


def test_decode_address_result_empty():
    """A contract without owner() returns nothing."""
    assert decode_address_result(b"") is None
    assert decode_address_result(b"\x00" * 31) is None
