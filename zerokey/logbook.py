"""Structured forensic logging for ZeroKey.

Every verification call, gate transition and builder operation leaves a JSON
line in ``<state dir>/logs/zerokey.log`` through a rotating file handler. The
logger is passed into the verifier and the gate explicitly so tests can swap
in their own instance and inspect :attr:`ForensicLogger.events`.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import deque
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from .utils.paths import state_dir

__all__ = ["ForensicLogger", "get_logger"]

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _logger_name(path: Path) -> str:
    """One stdlib logger per log file, so each file gets its own handlers."""

    digest = hashlib.sha256(str(path.expanduser().resolve()).encode("utf-8")).hexdigest()[:12]
    return f"zerokey.forensics.{digest}"


class ForensicLogger:
    """Emit leveled, structured log lines suitable for forensics."""

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        name: Optional[str] = None,
        console: bool = True,
        history: int = 500,
    ) -> None:
        self.path = Path(path or state_dir() / "logs" / "zerokey.log")
        self.events: Deque[Dict[str, Any]] = deque(maxlen=history)
        self._logger = logging.getLogger(name or _logger_name(self.path))
        if not self._logger.handlers:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._logger.setLevel(logging.DEBUG)
            formatter = logging.Formatter("%(message)s")

            file_handler = RotatingFileHandler(
                self.path,
                maxBytes=2_000_000,
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            self._logger.addHandler(file_handler)

            if console:
                console_handler = logging.StreamHandler()
                console_handler.setLevel(logging.INFO)
                console_handler.setFormatter(formatter)
                self._logger.addHandler(console_handler)
        else:
            for handler in self._logger.handlers:
                if isinstance(handler, RotatingFileHandler):
                    self.path = Path(handler.baseFilename)
                    break

    def log(self, category: str, action: str, status: str = "success", *, level: str = "info", **fields: Any) -> Dict[str, Any]:
        """Record a forensic event and return it.

        Parameters
        ----------
        category:
            Logical subsystem (e.g. ``"GATE"`` or ``"VERIFIER"``).
        action:
            Short verb describing what happened.
        status:
            ``"success"``, ``"failure"``, ``"skipped"`` etc.
        level:
            One of ``debug``, ``info``, ``warning``, ``error``.
        **fields:
            Additional context: endpoints, results, addresses.
        """

        timestamp = datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()
        payload: Dict[str, Any] = {"action": action, "status": status, **fields}
        event = {"ts": timestamp, "category": category.upper(), "level": level, **payload}
        self.events.append(event)
        serialized = json.dumps(payload, sort_keys=True, default=str)
        self._logger.log(_LEVELS.get(level, logging.INFO), f"{timestamp} | [{category.upper()}] {serialized}")
        return event

    def debug(self, category: str, action: str, status: str = "success", **fields: Any) -> Dict[str, Any]:
        return self.log(category, action, status, level="debug", **fields)

    def info(self, category: str, action: str, status: str = "success", **fields: Any) -> Dict[str, Any]:
        return self.log(category, action, status, level="info", **fields)

    def warning(self, category: str, action: str, status: str = "failure", **fields: Any) -> Dict[str, Any]:
        return self.log(category, action, status, level="warning", **fields)

    def error(self, category: str, action: str, status: str = "failure", **fields: Any) -> Dict[str, Any]:
        return self.log(category, action, status, level="error", **fields)

    def find(self, action: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["action"] == action]


_shared_logger: Optional[ForensicLogger] = None


def get_logger() -> ForensicLogger:
    global _shared_logger
    if _shared_logger is None:
        _shared_logger = ForensicLogger()
    return _shared_logger
