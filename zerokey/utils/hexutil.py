"""Hex and address helpers built on ``eth_utils``."""

from __future__ import annotations

from typing import Any

from eth_utils import encode_hex, is_address, is_hex_address


def is_well_formed_address(value: Any) -> bool:
    """Return ``True`` for ``0x`` + 40 hex chars with a valid checksum when mixed case."""

    if not isinstance(value, str) or not value.startswith("0x"):
        return False
    return is_address(value)


def is_address_shaped(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("0x") and is_hex_address(value)


def strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def to_hex_string(raw: bytes) -> str:
    return encode_hex(raw)


__all__ = ["is_address_shaped", "is_well_formed_address", "strip_0x", "to_hex_string"]
