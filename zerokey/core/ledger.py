"""Append-only forensic ledger with hash chaining and Ed25519 signatures."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import keyring
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519
from keyring.errors import KeyringError

from ..utils.paths import ensure_private_file, state_dir

HMAC_KEY_NAME = "ZEROKEY_AUDIT_HMAC_KEY"
DEFAULT_SERVICE = "zerokey"


def _canonical(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


class ForensicLedger:
    """JSONL ledger where each entry commits to the previous entry's hash."""

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        key_path: Optional[Path] = None,
        service_name: str = DEFAULT_SERVICE,
    ) -> None:
        root = state_dir()
        self.path = path or root / "audit.jsonl"
        self.key_path = key_path or root / "audit_ed25519.pem"
        self.service_name = service_name
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        ensure_private_file(self.path)
        self._key: Optional[ed25519.Ed25519PrivateKey] = None

    # -- internal helpers -------------------------------------------------
    def _signing_key(self) -> ed25519.Ed25519PrivateKey:
        if self._key is not None:
            return self._key
        if self.key_path.exists():
            key = serialization.load_pem_private_key(self.key_path.read_bytes(), password=None)
            if not isinstance(key, ed25519.Ed25519PrivateKey):
                raise RuntimeError(f"{self.key_path} does not hold an Ed25519 key")
        else:
            key = ed25519.Ed25519PrivateKey.generate()
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            pem = key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
            self.key_path.write_bytes(pem)
            ensure_private_file(self.key_path)
        self._key = key
        return key

    def _hmac_key(self) -> Optional[bytes]:
        secret: Optional[str] = None
        try:
            secret = keyring.get_password(self.service_name, HMAC_KEY_NAME)
        except KeyringError:
            secret = None
        if not secret:
            secret = os.getenv(HMAC_KEY_NAME)
        return secret.encode("utf-8") if secret else None

    def _last_hash(self) -> str:
        last = ""
        for entry in self.entries():
            last = str(entry.get("hash", ""))
        return last

    # -- public API -------------------------------------------------------
    def entries(self) -> Iterator[Dict[str, Any]]:
        with self.path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if line:
                    yield json.loads(line)

    def log(
        self,
        action: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        result: Optional[Dict[str, Any]] = None,
        ok: bool = True,
        severity: str = "INFO",
    ) -> Dict[str, Any]:
        """Append a forensic record and return the stored envelope."""

        envelope: Dict[str, Any] = {
            "prev": self._last_hash(),
            "ts": time.time(),
            "action": action,
            "params": params or {},
            "result": result or {},
            "ok": bool(ok),
            "severity": severity.upper(),
        }
        canonical = _canonical(envelope)
        digest = hashlib.sha256(canonical)
        key = self._signing_key()
        envelope["hash"] = digest.hexdigest()
        envelope["signature"] = base64.b64encode(key.sign(digest.digest())).decode("ascii")
        envelope["public_key"] = base64.b64encode(
            key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
        ).decode("ascii")
        hmac_key = self._hmac_key()
        if hmac_key:
            envelope["hmac"] = hmac.new(hmac_key, _canonical(envelope), hashlib.sha256).hexdigest()
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(envelope, ensure_ascii=False, default=str) + "\n")
        return envelope

    def _entry_is_valid(
        self,
        entry: Dict[str, Any],
        previous: str,
        public_key: ed25519.Ed25519PublicKey,
        hmac_key: Optional[bytes],
    ) -> bool:
        body = {k: entry[k] for k in ("prev", "ts", "action", "params", "result", "ok", "severity")}
        if body["prev"] != previous:
            return False
        digest = hashlib.sha256(_canonical(body))
        if digest.hexdigest() != entry.get("hash"):
            return False
        try:
            public_key.verify(base64.b64decode(entry["signature"], validate=True), digest.digest())
        except InvalidSignature:
            return False
        if hmac_key is not None:
            signed = {k: v for k, v in entry.items() if k != "hmac"}
            expected = hmac.new(hmac_key, _canonical(signed), hashlib.sha256).hexdigest()
            if not hmac.compare_digest(expected, str(entry.get("hmac", ""))):
                return False
        return True

    def verify(self) -> bool:
        """Return ``True`` when every entry chains and is signed by this ledger's key.

        Signatures are checked against the ledger's own key, never the
        ``public_key`` recorded in the entry. When an HMAC key is available
        every entry must also carry a matching ``hmac``. Unreadable lines and
        malformed fields fail verification.
        """

        previous = ""
        public_key: Optional[ed25519.Ed25519PublicKey] = None
        hmac_key = self._hmac_key()
        try:
            for entry in self.entries():
                if not isinstance(entry, dict):
                    return False
                if public_key is None:
                    public_key = self._signing_key().public_key()
                if not self._entry_is_valid(entry, previous, public_key, hmac_key):
                    return False
                previous = entry["hash"]
        except (KeyError, TypeError, ValueError):
            return False
        return True


__all__ = ["ForensicLedger"]
