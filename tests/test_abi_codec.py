from __future__ import annotations

import pytest

from conftest import PROXY
from zerokey.core.abi_codec import (
    UINT256_MAX,
    canonical_signature,
    encode_call,
    encode_constructor_args,
    function_selector,
    infer_abi_type,
    parse_signature,
)
from zerokey.errors import ArgumentEncodingError, UnsupportedArgumentTypeError, ValidationError


def test_known_selectors() -> None:
    assert function_selector("upgradeTo(address)").hex() == "3659cfe6"
    assert function_selector("upgradeToAndCall(address,bytes)").hex() == "4f1ef286"


def test_signature_whitespace_and_prefix_are_ignored() -> None:
    assert canonical_signature("function upgradeToAndCall(address, bytes)") == "upgradeToAndCall(address,bytes)"
    assert parse_signature("functionFoo(uint256)") == ("functionFoo", ["uint256"])
    assert parse_signature("pause()") == ("pause", [])


@pytest.mark.parametrize("signature", ["upgradeTo", "upgradeTo(address", "(address)", "f(address,)", "f((uint256,bool))"])
def test_malformed_signatures_rejected(signature: str) -> None:
    with pytest.raises(ValidationError):
        parse_signature(signature)


def test_infer_types() -> None:
    assert infer_abi_type(True) == "bool"
    assert infer_abi_type(0) == "uint256"
    assert infer_abi_type(UINT256_MAX) == "uint256"
    assert infer_abi_type(PROXY) == "address"
    assert infer_abi_type(PROXY.lower()) == "address"


def test_infer_rejects_out_of_range_integers() -> None:
    with pytest.raises(ArgumentEncodingError):
        infer_abi_type(-1)
    with pytest.raises(ArgumentEncodingError):
        infer_abi_type(UINT256_MAX + 1)


def test_unsupported_argument_reports_position() -> None:
    with pytest.raises(UnsupportedArgumentTypeError) as excinfo:
        encode_constructor_args([1, "not an address"])
    assert excinfo.value.index == 1


def test_constructor_args_are_one_word_each() -> None:
    assert encode_constructor_args([]) == b""
    encoded = encode_constructor_args([True, False, 7])
    assert len(encoded) == 96
    assert encoded[31] == 1
    assert encoded[63] == 0
    assert encoded[95] == 7


def test_encode_call_prefixes_selector() -> None:
    data = encode_call("upgradeTo(address)", [PROXY])
    assert data[:4].hex() == "3659cfe6"
    assert data[4:].hex() == "0" * 24 + PROXY[2:].lower()


def test_encode_call_checks_argument_count() -> None:
    with pytest.raises(ArgumentEncodingError, match="takes 1 argument"):
        encode_call("upgradeTo(address)", [])


def test_encode_call_wraps_encoder_errors() -> None:
    with pytest.raises(ArgumentEncodingError):
        encode_call("setFlag(bool)", ["yes"])
