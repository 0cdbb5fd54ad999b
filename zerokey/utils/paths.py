"""Filesystem path helpers for ZeroKey state."""

from __future__ import annotations

import os
from pathlib import Path


def state_dir() -> Path:
    """Return the directory used for persistent ZeroKey state.

    The location defaults to ``~/.zerokey`` but can be overridden via the
    ``ZEROKEY_STATE_DIR`` environment variable. The path is expanded and
    resolved so callers always receive an absolute location.
    """

    override = os.environ.get("ZEROKEY_STATE_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".zerokey"


def ensure_private_file(path: Path) -> None:
    try:
        path.chmod(0o600)
    except OSError:  # pragma: no cover - permission handling best effort
        return
