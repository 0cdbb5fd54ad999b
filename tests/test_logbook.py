"""Tests for the structured forensic logger."""

from __future__ import annotations

import json
import uuid
from pathlib import Path

from zerokey import logbook
from zerokey.logbook import ForensicLogger


def test_events_are_recorded_and_written(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "zerokey.log"
    logger = ForensicLogger(path, name=f"zerokey.test.{uuid.uuid4().hex}", console=False)

    event = logger.info("gate", "decision", status="approved", sig_name="safeTxSig")
    assert event["category"] == "GATE"
    assert event["level"] == "info"
    assert event["status"] == "approved"

    line = path.read_text(encoding="utf-8").strip().splitlines()[-1]
    prefix, _, body = line.partition(" | [GATE] ")
    assert prefix == event["ts"]
    assert json.loads(body) == {"action": "decision", "status": "approved", "sig_name": "safeTxSig"}


def test_failure_levels_default_to_failure_status(forensic_logger) -> None:
    assert forensic_logger.warning("VERIFIER", "tests")["status"] == "failure"
    assert forensic_logger.error("VERIFIER", "policy")["status"] == "failure"
    assert forensic_logger.debug("GATE", "transition")["status"] == "success"
    assert [event["level"] for event in forensic_logger.events] == ["warning", "error", "debug"]


def test_find_filters_by_action(forensic_logger) -> None:
    forensic_logger.info("VERIFIER", "policy", status="pending")
    forensic_logger.info("VERIFIER", "tests", status="pending")
    forensic_logger.error("VERIFIER", "policy")
    assert [event["status"] for event in forensic_logger.find("policy")] == ["pending", "failure"]


def test_history_is_bounded(tmp_path: Path) -> None:
    logger = ForensicLogger(tmp_path / "z.log", name=f"zerokey.test.{uuid.uuid4().hex}", console=False, history=3)
    for index in range(5):
        logger.info("BUILDER", "deployment_proposal", index=index)
    assert [event["index"] for event in logger.events] == [2, 3, 4]


def test_shared_logger_uses_state_dir(isolated_home, monkeypatch) -> None:
    monkeypatch.setattr(logbook, "_shared_logger", None)
    shared = logbook.get_logger()
    assert shared is logbook.get_logger()
    assert shared.path == isolated_home / "logs" / "zerokey.log"


def test_each_path_gets_its_own_file(tmp_path: Path) -> None:
    first = ForensicLogger(tmp_path / "a" / "zerokey.log", console=False)
    second = ForensicLogger(tmp_path / "b" / "zerokey.log", console=False)
    first.info("GATE", "decision", marker="first")
    second.info("GATE", "decision", marker="second")

    assert "first" in first.path.read_text(encoding="utf-8")
    assert "second" not in first.path.read_text(encoding="utf-8")
    assert "second" in second.path.read_text(encoding="utf-8")


def test_shared_name_reports_the_file_it_writes(tmp_path: Path) -> None:
    name = f"zerokey.test.{uuid.uuid4().hex}"
    first = ForensicLogger(tmp_path / "a.log", name=name, console=False)
    second = ForensicLogger(tmp_path / "b.log", name=name, console=False)
    second.info("GATE", "decision")
    assert second.path == first.path
    assert second.path.read_text(encoding="utf-8").strip()
