from __future__ import annotations

import json

import pytest
import requests

from conftest import FakeResponse, FakeSession
from zerokey.core.verifier import GITHUB_API_VERSION, ConditionVerifier

POLICY_URL = "https://opa.example/v1/data/deploy/allow"
TESTS_URL = "https://ci.example/runs/1/summary.json"
PR_URL = "https://api.github.com/repos/acme/contracts/pulls/42"
TOKEN = "ghp_secret_value"


def _verifier(session: FakeSession, logger, **kwargs) -> ConditionVerifier:
    return ConditionVerifier(session=session, logger=logger, **kwargs)


# -- policy -----------------------------------------------------------------
def test_policy_allow_passes(forensic_logger) -> None:
    session = FakeSession({POLICY_URL: FakeResponse(200, {"result": {"allow": True}})})
    assert _verifier(session, forensic_logger).verify_policy(POLICY_URL, {"network": "sepolia"}) is True
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["json"] == {"input": {"network": "sepolia"}}
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["timeout"] == 10.0


@pytest.mark.parametrize(
    "payload",
    [
        {"result": {"allow": False, "violations": ["no audit"]}},
        {"result": {"allow": "true"}},
        {"result": {}},
        {},
        [],
        None,
    ],
)
def test_policy_anything_but_strict_true_fails(forensic_logger, payload) -> None:
    session = FakeSession({POLICY_URL: FakeResponse(200, payload)})
    assert _verifier(session, forensic_logger).verify_policy(POLICY_URL, {}) is False


def test_policy_records_violations(forensic_logger) -> None:
    session = FakeSession({POLICY_URL: FakeResponse(200, {"result": {"allow": False, "violations": ["v1"]}})})
    _verifier(session, forensic_logger).verify_policy(POLICY_URL, {})
    failures = [event for event in forensic_logger.find("policy") if event["status"] == "failure"]
    assert failures[-1]["violations"] == ["v1"]


def test_policy_http_error_fails(forensic_logger) -> None:
    session = FakeSession({POLICY_URL: FakeResponse(500, {"result": {"allow": True}})})
    assert _verifier(session, forensic_logger).verify_policy(POLICY_URL, {}) is False
    assert "HTTP 500" in forensic_logger.find("policy")[-1]["error"]


def test_policy_timeout_fails(forensic_logger) -> None:
    session = FakeSession({POLICY_URL: requests.Timeout("slow")})
    verifier = _verifier(session, forensic_logger, timeout=2.5)
    assert verifier.verify_policy(POLICY_URL, {}) is False
    assert session.calls[0][2]["timeout"] == 2.5
    assert "timed out" in forensic_logger.find("policy")[-1]["error"]


def test_policy_unreachable_fails(forensic_logger) -> None:
    assert _verifier(FakeSession(), forensic_logger).verify_policy(POLICY_URL, {}) is False


def test_policy_unexpected_exception_fails(forensic_logger) -> None:
    session = FakeSession({POLICY_URL: RuntimeError("boom")})
    assert _verifier(session, forensic_logger).verify_policy(POLICY_URL, {}) is False


# -- tests ------------------------------------------------------------------
def test_tests_success_passes(forensic_logger) -> None:
    session = FakeSession({TESTS_URL: FakeResponse(200, {"conclusion": "success"})})
    assert _verifier(session, forensic_logger).verify_tests_passed(TESTS_URL) is True
    assert session.calls[0][0] == "GET"


@pytest.mark.parametrize("conclusion", ["failure", "cancelled", "SUCCESS", None])
def test_tests_other_conclusions_fail(forensic_logger, conclusion) -> None:
    session = FakeSession({TESTS_URL: FakeResponse(200, {"conclusion": conclusion})})
    assert _verifier(session, forensic_logger).verify_tests_passed(TESTS_URL) is False


def test_tests_invalid_json_fails(forensic_logger) -> None:
    session = FakeSession({TESTS_URL: FakeResponse(200, invalid_json=True)})
    assert _verifier(session, forensic_logger).verify_tests_passed(TESTS_URL) is False
    assert "invalid JSON" in forensic_logger.find("tests")[-1]["error"]


# -- pull request -----------------------------------------------------------
def test_pr_merged_passes_with_github_headers(forensic_logger) -> None:
    session = FakeSession({PR_URL: FakeResponse(200, {"merged": True, "merged_at": "2024-01-01T00:00:00Z"})})
    assert _verifier(session, forensic_logger).verify_pr_merged("acme", "contracts", 42, TOKEN) is True
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", PR_URL)
    headers = kwargs["headers"]
    assert headers["Authorization"] == f"Bearer {TOKEN}"
    assert headers["Accept"] == "application/vnd.github+json"
    assert headers["X-GitHub-Api-Version"] == GITHUB_API_VERSION


@pytest.mark.parametrize("payload", [{"merged": False}, {"merged": "true"}, {"state": "closed"}])
def test_pr_not_merged_fails(forensic_logger, payload) -> None:
    session = FakeSession({PR_URL: FakeResponse(200, payload)})
    assert _verifier(session, forensic_logger).verify_pr_merged("acme", "contracts", 42, TOKEN) is False


def test_pr_not_found_fails(forensic_logger) -> None:
    session = FakeSession({PR_URL: FakeResponse(404, {"message": "Not Found"})})
    assert _verifier(session, forensic_logger).verify_pr_merged("acme", "contracts", 42, TOKEN) is False


def test_pr_uses_configured_api_base(forensic_logger) -> None:
    url = "https://ghe.example/api/v3/repos/acme/contracts/pulls/7"
    session = FakeSession({url: FakeResponse(200, {"merged": True})})
    verifier = _verifier(session, forensic_logger, github_api_url="https://ghe.example/api/v3/")
    assert verifier.verify_pr_merged("acme", "contracts", 7, TOKEN) is True
    assert session.urls() == [url]


def test_token_never_reaches_the_log(forensic_logger) -> None:
    session = FakeSession({PR_URL: FakeResponse(401, {"message": "Bad credentials"})})
    verifier = _verifier(session, forensic_logger)
    verifier.verify_pr_merged("acme", "contracts", 42, TOKEN)
    session.routes[PR_URL] = FakeResponse(200, {"merged": True})
    verifier.verify_pr_merged("acme", "contracts", 42, TOKEN)
    dumped = json.dumps(list(forensic_logger.events), default=str)
    assert TOKEN not in dumped
    assert TOKEN not in forensic_logger.path.read_text(encoding="utf-8")
