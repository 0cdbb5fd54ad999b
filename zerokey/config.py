"""Runtime configuration resolved from ``.env``, the environment and the keyring."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError
from dotenv import load_dotenv

from .errors import ConfigurationError
from .utils.paths import state_dir

ENV_PATH_DEFAULT = Path(".env")
SERVICE_ENV_VAR = "ZEROKEY_KEYRING_SERVICE"
DEFAULT_SERVICE = "zerokey"
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_GITHUB_API = "https://api.github.com"
DEFAULT_SIG_NAME = "safeTxSig"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def _int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class Settings:
    """Process configuration; build with :meth:`from_env`."""

    state_dir: Path = field(default_factory=state_dir)
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    github_api_url: str = DEFAULT_GITHUB_API
    sig_name: str = DEFAULT_SIG_NAME
    storage: str = "file"
    keyring_service: str = DEFAULT_SERVICE
    safe_address: Optional[str] = None
    chain_id: Optional[int] = None
    pkp_public_key: Optional[str] = None

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "Settings":
        load_dotenv(env_path or ENV_PATH_DEFAULT, override=False)
        return cls(
            state_dir=state_dir(),
            http_timeout=_float_env("ZEROKEY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            github_api_url=os.getenv("GITHUB_API_URL", DEFAULT_GITHUB_API).rstrip("/"),
            sig_name=os.getenv("ZEROKEY_SIG_NAME", DEFAULT_SIG_NAME),
            storage=os.getenv("ZEROKEY_STORAGE", "file").strip().lower(),
            keyring_service=os.getenv(SERVICE_ENV_VAR, DEFAULT_SERVICE),
            safe_address=os.getenv("SAFE_ADDRESS") or None,
            chain_id=_int_env("CHAIN_ID"),
            pkp_public_key=os.getenv("PKP_PUBLIC_KEY") or None,
        )

    def secret(self, name: str) -> Optional[str]:
        """Resolve a secret keyring-first, falling back to the environment."""

        try:
            value = keyring.get_password(self.keyring_service, name)
        except KeyringError:
            value = None
        if value:
            return value
        return os.getenv(name) or None

    def require_secret(self, name: str) -> str:
        value = self.secret(name)
        if value is None:
            raise ConfigurationError(f"missing required secret {name}", context={"secret": name})
        return value


__all__ = ["Settings"]
