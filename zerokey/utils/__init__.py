"""Utility helpers exposed by ZeroKey."""

from .hexutil import is_well_formed_address, strip_0x, to_hex_string
from .paths import ensure_private_file, state_dir

__all__ = [
    "ensure_private_file",
    "is_well_formed_address",
    "state_dir",
    "strip_0x",
    "to_hex_string",
]
