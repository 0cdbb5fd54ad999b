"""Conditional signing gate.

One :class:`SigningGate` handles exactly one invocation::

    IDLE -> COLLECTING_CONDITIONS -> EVALUATING -> APPROVED | DENIED
    APPROVED -> SIGNING -> SIGNED | SIGN_FAILED

The signing capability is reached only from ``APPROVED``, and ``APPROVED`` is
reached only when every required condition verified ``True`` during this run.
All three checks are executed even after one fails so the audit record is
complete. Nothing is retried.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from web3 import Web3

from ..config import DEFAULT_SIG_NAME
from ..errors import ConditionsNotMetError, GateParameterError, GateStateError, SigningFailedError
from ..logbook import ForensicLogger, get_logger
from ..models import GitHubParams, PolicyParams, SigningConditions, TestResultParams, VerificationResult
from ..utils.hexutil import strip_0x, to_hex_string
from .executor import SigningExecutor
from .ledger import ForensicLedger
from .verifier import ConditionVerifier

CONDITIONS_NOT_MET = "Signing conditions not met. Refusing to sign."


class GateState(str, Enum):
    IDLE = "idle"
    COLLECTING_CONDITIONS = "collecting_conditions"
    EVALUATING = "evaluating"
    APPROVED = "approved"
    DENIED = "denied"
    SIGNING = "signing"
    SIGNED = "signed"
    SIGN_FAILED = "sign_failed"


_TRANSITIONS = {
    GateState.IDLE: {GateState.COLLECTING_CONDITIONS},
    GateState.COLLECTING_CONDITIONS: {GateState.EVALUATING},
    GateState.EVALUATING: {GateState.APPROVED, GateState.DENIED},
    GateState.APPROVED: {GateState.SIGNING},
    GateState.SIGNING: {GateState.SIGNED, GateState.SIGN_FAILED},
}
TERMINAL_STATES = frozenset({GateState.SIGNED, GateState.SIGN_FAILED, GateState.DENIED})


class GateOutcome(str, Enum):
    SIGNED = "signed"
    DENIED = "denied"
    SIGN_FAILED = "sign_failed"


def _coerce_bytes(raw: Any) -> bytes:
    if raw is None:
        return b""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if isinstance(raw, str):
        return bytes.fromhex(strip_0x(raw))
    if isinstance(raw, (list, tuple)):
        return bytes(raw)
    raise TypeError(f"unsupported dataToSign type {type(raw).__name__}")


@dataclass(frozen=True)
class GateParams:
    """Everything one gate invocation needs, passed explicitly."""

    data_to_sign: bytes
    public_key: str
    conditions: SigningConditions
    opa: Optional[PolicyParams] = None
    tests: Optional[TestResultParams] = None
    github: Optional[GitHubParams] = None
    sig_name: str = DEFAULT_SIG_NAME

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GateParams":
        """Parse the camelCase JSON shape handed to the sandbox."""

        try:
            conditions = payload.get("conditions")
            if not isinstance(conditions, Mapping):
                raise GateParameterError("Missing signing conditions")
            opa = payload.get("opa")
            tests = payload.get("tests")
            github = payload.get("github")
            return cls(
                data_to_sign=_coerce_bytes(payload.get("dataToSign")),
                public_key=payload.get("publicKey") or "",
                conditions=SigningConditions.from_dict(conditions),
                opa=None if not opa else PolicyParams(
                    policy_endpoint=opa["policyEndpoint"],
                    deployment_config=opa.get("deploymentConfig") or {},
                ),
                tests=None if not tests else TestResultParams(test_results_url=tests["testResultsUrl"]),
                github=None if not github else GitHubParams(
                    repo_owner=github["repoOwner"],
                    repo_name=github["repoName"],
                    pr_number=int(github["prNumber"]),
                    github_token=github["githubToken"],
                ),
                sig_name=payload.get("sigName") or DEFAULT_SIG_NAME,
            )
        except GateParameterError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise GateParameterError(f"Malformed gate parameters: {exc}") from exc


@dataclass
class GateResult:
    outcome: GateOutcome
    verification: VerificationResult
    error: Optional[str] = None
    timestamp: Optional[str] = None
    states: List[GateState] = field(default_factory=list)
    sig_name: str = DEFAULT_SIG_NAME

    @property
    def success(self) -> bool:
        return self.outcome is GateOutcome.SIGNED

    def to_response(self) -> Dict[str, Any]:
        if self.outcome is GateOutcome.SIGNED:
            return {
                "success": True,
                "verificationResults": self.verification.to_dict(),
                "timestamp": self.timestamp,
            }
        if self.outcome is GateOutcome.DENIED:
            return {
                "success": False,
                "error": self.error,
                "verificationResults": self.verification.to_dict(),
            }
        return {"success": False, "error": self.error}

    def raise_for_outcome(self) -> None:
        if self.outcome is GateOutcome.DENIED:
            raise ConditionsNotMetError(self.error or CONDITIONS_NOT_MET, verification=self.verification.to_dict())
        if self.outcome is GateOutcome.SIGN_FAILED:
            raise SigningFailedError(self.error or "signing failed")


class SigningGate:
    """Single-use conditional signer."""

    def __init__(
        self,
        executor: SigningExecutor,
        verifier: ConditionVerifier,
        *,
        logger: Optional[ForensicLogger] = None,
        ledger: Optional[ForensicLedger] = None,
    ) -> None:
        self.executor = executor
        self.verifier = verifier
        self.logger = logger or get_logger()
        self.ledger = ledger
        self.state = GateState.IDLE
        self.history: List[GateState] = [GateState.IDLE]
        self._started = False

    def _transition(self, target: GateState) -> None:
        if target not in _TRANSITIONS.get(self.state, ()):
            raise GateStateError(f"illegal gate transition {self.state.value} -> {target.value}")
        self.logger.debug("GATE", "transition", source=self.state.value, target=target.value)
        self.state = target
        self.history.append(target)

    def _emit(self, response: Dict[str, Any]) -> None:
        self.executor.emit_response(json.dumps(response))

    def _check(
        self,
        name: str,
        required: bool,
        bundle: Any,
        run_check: Callable[[Any], bool],
    ) -> bool:
        if not required:
            self.logger.info("GATE", f"{name}_check", status="skipped", reason="not required")
            return True
        if bundle is None:
            self.logger.error("GATE", f"{name}_check", reason="parameters missing")
            return False
        passed = bool(run_check(bundle))
        if passed:
            self.logger.info("GATE", f"{name}_check", status="pass")
        else:
            self.logger.error("GATE", f"{name}_check", reason="check failed")
        return passed

    def _record(self, params: GateParams, result: GateResult) -> None:
        if self.ledger is None:
            return
        self.ledger.log(
            "gate_decision",
            params={
                "public_key": params.public_key,
                "sig_name": params.sig_name,
                "data_digest": to_hex_string(Web3.keccak(params.data_to_sign)),
                "conditions": {
                    "opaPolicyPassed": params.conditions.policy_required,
                    "testsPassed": params.conditions.tests_required,
                    "prMerged": params.conditions.pr_merge_required,
                },
            },
            result={
                "outcome": result.outcome.value,
                "verificationResults": result.verification.to_dict(),
                "error": result.error,
            },
            ok=result.success,
            severity="INFO" if result.success else "WARNING",
        )

    def run(self, params: GateParams) -> GateResult:
        if self._started:
            raise GateStateError("gate already ran; create a new gate per invocation")
        self._started = True

        if not params.data_to_sign or not params.public_key:
            message = "Missing required parameters: dataToSign or publicKey"
            self.logger.error("GATE", "parameters", error=message)
            self._emit({"success": False, "error": message})
            raise GateParameterError(message)
        if not isinstance(params.conditions, SigningConditions):
            message = "Missing signing conditions"
            self.logger.error("GATE", "parameters", error=message)
            self._emit({"success": False, "error": message})
            raise GateParameterError(message)

        self._transition(GateState.COLLECTING_CONDITIONS)
        conditions = params.conditions
        self.logger.info(
            "GATE",
            "conditions",
            status="received",
            opaPolicyPassed=conditions.policy_required,
            testsPassed=conditions.tests_required,
            prMerged=conditions.pr_merge_required,
        )
        verification = VerificationResult(
            opa_policy_passed=self._check(
                "policy",
                conditions.policy_required,
                params.opa,
                lambda opa: self.verifier.verify_policy(opa.policy_endpoint, opa.deployment_config),
            ),
            tests_passed=self._check(
                "tests",
                conditions.tests_required,
                params.tests,
                lambda tests: self.verifier.verify_tests_passed(tests.test_results_url),
            ),
            pr_merged=self._check(
                "pr_merged",
                conditions.pr_merge_required,
                params.github,
                lambda gh: self.verifier.verify_pr_merged(gh.repo_owner, gh.repo_name, gh.pr_number, gh.github_token),
            ),
        )

        self._transition(GateState.EVALUATING)
        self.logger.info("GATE", "verification", status="complete", **verification.to_dict())

        if not verification.all_met:
            self._transition(GateState.DENIED)
            self.logger.error("GATE", "decision", status="denied", error=CONDITIONS_NOT_MET)
            result = GateResult(
                GateOutcome.DENIED,
                verification,
                error=CONDITIONS_NOT_MET,
                states=list(self.history),
                sig_name=params.sig_name,
            )
            self._emit(result.to_response())
            self._record(params, result)
            return result

        self._transition(GateState.APPROVED)
        self.logger.info("GATE", "decision", status="approved")
        self._transition(GateState.SIGNING)
        try:
            self.executor.sign(params.data_to_sign, params.public_key, params.sig_name)
        except Exception as exc:
            self._transition(GateState.SIGN_FAILED)
            message = f"Signing failed: {exc}"
            self.logger.error("GATE", "sign", error=message)
            result = GateResult(
                GateOutcome.SIGN_FAILED,
                verification,
                error=message,
                states=list(self.history),
                sig_name=params.sig_name,
            )
            self._emit(result.to_response())
            self._record(params, result)
            return result

        self._transition(GateState.SIGNED)
        self.logger.info("GATE", "sign", sig_name=params.sig_name)
        result = GateResult(
            GateOutcome.SIGNED,
            verification,
            timestamp=datetime.now(timezone.utc).isoformat(),
            states=list(self.history),
            sig_name=params.sig_name,
        )
        self._emit(result.to_response())
        self._record(params, result)
        return result


def run_signing_gate(
    params: Union[GateParams, Mapping[str, Any]],
    *,
    executor: SigningExecutor,
    verifier: Optional[ConditionVerifier] = None,
    logger: Optional[ForensicLogger] = None,
    ledger: Optional[ForensicLedger] = None,
) -> GateResult:
    """Run one gate invocation from a fresh ``IDLE`` state."""

    logger = logger or get_logger()
    if not isinstance(params, GateParams):
        try:
            params = GateParams.from_dict(params)
        except GateParameterError as exc:
            logger.error("GATE", "parameters", error=str(exc))
            executor.emit_response(json.dumps({"success": False, "error": str(exc)}))
            raise
    verifier = verifier or ConditionVerifier(logger=logger)
    gate = SigningGate(executor, verifier, logger=logger, ledger=ledger)
    return gate.run(params)


__all__ = [
    "CONDITIONS_NOT_MET",
    "GateOutcome",
    "GateParams",
    "GateResult",
    "GateState",
    "SigningGate",
    "TERMINAL_STATES",
    "run_signing_gate",
]
