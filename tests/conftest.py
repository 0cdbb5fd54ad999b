from __future__ import annotations

import json
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import keyring
import keyring.backend
import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from zerokey.logbook import ForensicLogger  # noqa: E402

SAFE = "0x742d35cc6634c0532925a3b844bc9e7595f0beb0"
PROXY = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
IMPLEMENTATION = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
DEV_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


class MemoryKeyring(keyring.backend.KeyringBackend):
    priority = 1

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self._data.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self._data[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        self._data.pop((service, username), None)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, *, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self.reason = "OK" if status_code < 400 else "Error"
        self._payload = payload
        self._invalid_json = invalid_json

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """Stand-in for ``requests.Session`` keyed by URL."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        outcome = self.routes.get(url)
        if outcome is None:
            raise requests.ConnectionError(f"no route for {url}")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def urls(self) -> List[str]:
        return [url for _, url, _ in self.calls]


class RecordingExecutor:
    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.sign_calls: List[Tuple[bytes, str, str]] = []
        self.responses: List[str] = []

    def sign(self, to_sign: bytes, public_key: str, sig_name: str) -> None:
        self.sign_calls.append((to_sign, public_key, sig_name))
        if self.error is not None:
            raise self.error

    def emit_response(self, response: str) -> None:
        self.responses.append(response)

    @property
    def last_response(self) -> Dict[str, Any]:
        return json.loads(self.responses[-1])


@pytest.fixture()
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("ZEROKEY_STATE_DIR", str(tmp_path))
    keyring.set_keyring(MemoryKeyring())
    return tmp_path


@pytest.fixture()
def forensic_logger(tmp_path: Path) -> ForensicLogger:
    return ForensicLogger(
        tmp_path / "logs" / "zerokey.log",
        name=f"zerokey.test.{uuid.uuid4().hex}",
        console=False,
    )


@pytest.fixture()
def executor() -> RecordingExecutor:
    return RecordingExecutor()
