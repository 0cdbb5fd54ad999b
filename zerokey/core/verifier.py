"""Fail-closed checks against the policy, test-result and GitHub endpoints.

Every check reduces to a boolean. Transport errors, timeouts, non-2xx
responses, malformed payloads and unexpected exceptions all resolve to
``False`` and leave a log entry; nothing raises out of this module.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from ..config import DEFAULT_GITHUB_API, DEFAULT_HTTP_TIMEOUT, Settings
from ..logbook import ForensicLogger, get_logger

GITHUB_API_VERSION = "2022-11-28"


class ConditionVerifier:
    """Query the three external oracles the signing gate depends on."""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        github_api_url: str = DEFAULT_GITHUB_API,
        logger: Optional[ForensicLogger] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self.github_api_url = github_api_url.rstrip("/")
        self.logger = logger or get_logger()

    @classmethod
    def from_settings(cls, settings: Settings, *, logger: Optional[ForensicLogger] = None) -> "ConditionVerifier":
        return cls(timeout=settings.http_timeout, github_api_url=settings.github_api_url, logger=logger)

    def _fetch_json(self, check: str, method: str, url: str, **kwargs: Any) -> Optional[Any]:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            self.logger.error("VERIFIER", check, url=url, error=f"timed out after {self.timeout}s")
            return None
        except requests.RequestException as exc:
            self.logger.error("VERIFIER", check, url=url, error=str(exc))
            return None
        if not response.ok:
            self.logger.error(
                "VERIFIER",
                check,
                url=url,
                error=f"HTTP {response.status_code} {response.reason}",
            )
            return None
        try:
            return response.json()
        except ValueError as exc:
            self.logger.error("VERIFIER", check, url=url, error=f"invalid JSON: {exc}")
            return None

    # -- checks -----------------------------------------------------------
    def verify_policy(self, endpoint: str, config: Mapping[str, Any]) -> bool:
        """POST ``{"input": config}``; passes iff ``result.allow is True``."""

        try:
            self.logger.info("VERIFIER", "policy", status="pending", url=endpoint)
            payload = self._fetch_json(
                "policy",
                "POST",
                endpoint,
                json={"input": dict(config)},
                headers={"Content-Type": "application/json"},
            )
            if payload is None:
                return False
            result = payload.get("result") if isinstance(payload, dict) else None
            allowed = isinstance(result, dict) and result.get("allow") is True
            if allowed:
                self.logger.info("VERIFIER", "policy", status="pass", url=endpoint)
            else:
                violations = result.get("violations") if isinstance(result, dict) else None
                self.logger.error("VERIFIER", "policy", url=endpoint, violations=violations)
            return allowed
        except Exception as exc:
            self.logger.error("VERIFIER", "policy", url=endpoint, error=repr(exc))
            return False

    def verify_tests_passed(self, url: str) -> bool:
        """GET the test summary; passes iff ``conclusion == "success"``."""

        try:
            self.logger.info("VERIFIER", "tests", status="pending", url=url)
            payload = self._fetch_json("tests", "GET", url)
            if payload is None:
                return False
            passed = isinstance(payload, dict) and payload.get("conclusion") == "success"
            if passed:
                self.logger.info("VERIFIER", "tests", status="pass", url=url)
            else:
                details = payload.get("details") if isinstance(payload, dict) else None
                self.logger.error("VERIFIER", "tests", url=url, details=details)
            return passed
        except Exception as exc:
            self.logger.error("VERIFIER", "tests", url=url, error=repr(exc))
            return False

    def verify_pr_merged(self, owner: str, repo: str, pr_number: int, token: str) -> bool:
        """GET the pull request with bearer auth; passes iff ``merged is True``."""

        try:
            url = f"{self.github_api_url}/repos/{owner}/{repo}/pulls/{int(pr_number)}"
            self.logger.info("VERIFIER", "pr_merged", status="pending", url=url)
            payload = self._fetch_json(
                "pr_merged",
                "GET",
                url,
                headers={
                    "Accept": "application/vnd.github+json",
                    "Authorization": f"Bearer {token}",
                    "X-GitHub-Api-Version": GITHUB_API_VERSION,
                },
            )
            if payload is None:
                return False
            merged = isinstance(payload, dict) and payload.get("merged") is True
            if merged:
                self.logger.info("VERIFIER", "pr_merged", status="pass", url=url, merged_at=payload.get("merged_at"))
            else:
                self.logger.error("VERIFIER", "pr_merged", url=url, merged=False)
            return merged
        except Exception as exc:
            self.logger.error("VERIFIER", "pr_merged", owner=owner, repo=repo, error=repr(exc))
            return False


__all__ = ["ConditionVerifier", "GITHUB_API_VERSION"]
