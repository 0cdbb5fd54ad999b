"""Persistence for serialized proposals."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..config import Settings
from ..errors import StorageError

ProposalRecord = Dict[str, Any]


class ProposalStore(Protocol):
    def all(self) -> List[ProposalRecord]: ...

    def get(self, proposal_id: str) -> Optional[ProposalRecord]: ...

    def create(self, record: ProposalRecord) -> None: ...

    def update(self, proposal_id: str, record: ProposalRecord) -> None: ...

    def delete(self, proposal_id: str) -> None: ...


def _require_id(record: ProposalRecord) -> str:
    proposal_id = record.get("id")
    if not isinstance(proposal_id, str) or not proposal_id:
        raise StorageError("proposal record needs a non-empty string id", context={"record_keys": sorted(record)})
    return proposal_id


class FileProposalStore:
    """JSON list kept in ``<directory>/proposals.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.path = self.directory / "proposals.json"
        self.directory.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.write_text("[]", encoding="utf-8")

    def _read(self) -> List[ProposalRecord]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return []
        return payload if isinstance(payload, list) else []

    def _write(self, records: List[ProposalRecord]) -> None:
        try:
            self.path.write_text(json.dumps(records, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"could not write {self.path}: {exc}", context={"operation": "write"}) from exc

    def all(self) -> List[ProposalRecord]:
        return self._read()

    def get(self, proposal_id: str) -> Optional[ProposalRecord]:
        for record in self._read():
            if record.get("id") == proposal_id:
                return record
        return None

    def create(self, record: ProposalRecord) -> None:
        _require_id(record)
        records = self._read()
        records.append(record)
        self._write(records)

    def update(self, proposal_id: str, record: ProposalRecord) -> None:
        records = self._read()
        for index, current in enumerate(records):
            if current.get("id") == proposal_id:
                records[index] = record
                self._write(records)
                return

    def delete(self, proposal_id: str) -> None:
        records = self._read()
        remaining = [record for record in records if record.get("id") != proposal_id]
        if len(remaining) != len(records):
            self._write(remaining)


class InMemoryProposalStore:
    def __init__(self) -> None:
        self._records: Dict[str, ProposalRecord] = {}

    def all(self) -> List[ProposalRecord]:
        return list(self._records.values())

    def get(self, proposal_id: str) -> Optional[ProposalRecord]:
        return self._records.get(proposal_id)

    def create(self, record: ProposalRecord) -> None:
        self._records[_require_id(record)] = record

    def update(self, proposal_id: str, record: ProposalRecord) -> None:
        if proposal_id in self._records:
            self._records[proposal_id] = record

    def delete(self, proposal_id: str) -> None:
        self._records.pop(proposal_id, None)

    def clear(self) -> None:
        self._records.clear()


def get_store(settings: Settings) -> ProposalStore:
    if settings.storage == "memory":
        return InMemoryProposalStore()
    if settings.storage == "file":
        return FileProposalStore(settings.state_dir / "storage")
    raise StorageError(f"unknown storage backend {settings.storage!r}", context={"backend": settings.storage})


__all__ = ["FileProposalStore", "InMemoryProposalStore", "ProposalStore", "get_store"]
