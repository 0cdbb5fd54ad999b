"""Signing capability consumed by the gate, plus PKP key helpers.

The custody network's threshold signer is external. The gate only sees the
:class:`SigningExecutor` protocol; :class:`LocalAccountExecutor` backs it with
an ``eth_account`` key for local dry runs.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..errors import ValidationError

_PKP_PUBLIC_KEY = re.compile(r"^0x04[0-9a-fA-F]{128}$")


class SigningExecutor(Protocol):
    def sign(self, to_sign: bytes, public_key: str, sig_name: str) -> None:
        """Produce a signature share; the signature is collected out of band."""

    def emit_response(self, response: str) -> None:
        """Publish the invocation's single response string."""


def validate_pkp_public_key(public_key: str) -> str:
    """Return ``public_key`` if it is an uncompressed secp256k1 key (``0x04`` + 64 bytes)."""

    if not isinstance(public_key, str) or not public_key.strip():
        raise ValidationError("PKP public key is required", field="public key", value=public_key)
    if not _PKP_PUBLIC_KEY.match(public_key):
        raise ValidationError("Invalid PKP public key", field="public key", value=public_key)
    return public_key


def pkp_eth_address(public_key: str) -> str:
    """Ethereum address controlled by a PKP: last 20 bytes of keccak(x ++ y)."""

    validate_pkp_public_key(public_key)
    digest = Web3.keccak(hexstr=public_key[4:])
    return Web3.to_checksum_address(Web3.to_hex(digest[-20:]))


class LocalAccountExecutor:
    """Sign locally with a single key; for development and tests only."""

    def __init__(self, private_key: str) -> None:
        self._account: LocalAccount = Account.from_key(private_key)
        self.signatures: Dict[str, Dict[str, Any]] = {}
        self.responses: List[str] = []

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, to_sign: bytes, public_key: str, sig_name: str) -> None:
        if pkp_eth_address(public_key) != self._account.address:
            raise ValueError("public key does not belong to the local signer")
        signed = self._account.sign_message(encode_defunct(primitive=bytes(to_sign)))
        self.signatures[sig_name] = {
            "r": Web3.to_hex(signed.r),
            "s": Web3.to_hex(signed.s),
            "v": signed.v,
            "signature": Web3.to_hex(signed.signature),
        }

    def emit_response(self, response: str) -> None:
        self.responses.append(response)

    @property
    def last_response(self) -> Optional[Dict[str, Any]]:
        if not self.responses:
            return None
        return json.loads(self.responses[-1])


__all__ = [
    "LocalAccountExecutor",
    "SigningExecutor",
    "pkp_eth_address",
    "validate_pkp_public_key",
]
