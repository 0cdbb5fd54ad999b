"""ABI helpers: constructor argument inference, selectors and call data."""

from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence, Tuple

from eth_abi import encode
from eth_abi.exceptions import ABITypeError, EncodingError, ParseError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from ..errors import ArgumentEncodingError, UnsupportedArgumentTypeError, ValidationError
from ..utils.hexutil import is_address_shaped

UINT256_MAX = 2**256 - 1

_SIGNATURE = re.compile(r"^(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)\((?P<args>[^()]*)\)$")


def infer_abi_type(value: Any, *, index: Optional[int] = None) -> str:
    """Map a runtime value to the ABI type it is encoded as.

    ``bool`` is checked before ``int`` since it is an ``int`` subclass. Strings
    are only accepted when they are shaped like an address; everything else is
    rejected rather than coerced.
    """

    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        if value < 0 or value > UINT256_MAX:
            raise ArgumentEncodingError(f"Integer out of uint256 range: {value}", index=index, value=value)
        return "uint256"
    if is_address_shaped(value):
        return "address"
    raise UnsupportedArgumentTypeError(value, index=index)


def _normalise(abi_type: str, value: Any) -> Any:
    if abi_type == "address" and isinstance(value, str):
        return to_checksum_address(value)
    return value


def _encode(types: Sequence[str], values: Sequence[Any]) -> bytes:
    try:
        return encode(list(types), [_normalise(t, v) for t, v in zip(types, values)])
    except (EncodingError, ParseError, ABITypeError, ValueError, TypeError) as exc:
        raise ArgumentEncodingError(f"Could not encode arguments as ({','.join(types)}): {exc}") from exc


def encode_constructor_args(args: Sequence[Any]) -> bytes:
    """Encode constructor arguments by their runtime types, 32 bytes per value."""

    if not args:
        return b""
    types = [infer_abi_type(value, index=position) for position, value in enumerate(args)]
    return _encode(types, args)


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """Split ``name(type,type)`` into its name and argument types.

    Tuple arguments are not supported.
    """

    text = str(signature).strip()
    if text.startswith("function "):
        text = text[len("function "):]
    canonical = "".join(text.split())
    match = _SIGNATURE.match(canonical)
    if match is None:
        raise ValidationError(f"Invalid function signature: {signature!r}", field="function selector", value=signature)
    args = match.group("args")
    types = args.split(",") if args else []
    if any(not part for part in types):
        raise ValidationError(f"Invalid function signature: {signature!r}", field="function selector", value=signature)
    return match.group("name"), types


def canonical_signature(signature: str) -> str:
    name, types = parse_signature(signature)
    return f"{name}({','.join(types)})"


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak-256 over the canonical signature."""

    return function_signature_to_4byte_selector(canonical_signature(signature))


def encode_call(signature: str, args: Sequence[Any]) -> bytes:
    _, types = parse_signature(signature)
    if len(types) != len(args):
        raise ArgumentEncodingError(
            f"{canonical_signature(signature)} takes {len(types)} argument(s), got {len(args)}",
        )
    return function_selector(signature) + _encode(types, args)


__all__ = [
    "UINT256_MAX",
    "canonical_signature",
    "encode_call",
    "encode_constructor_args",
    "function_selector",
    "infer_abi_type",
    "parse_signature",
]
