"""Plain data types exchanged between the builder, the gate and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import ValidationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_GAS_FIELDS = (
    ("safe_tx_gas", "safeTxGas"),
    ("base_gas", "baseGas"),
    ("gas_price", "gasPrice"),
    ("gas_token", "gasToken"),
)


def normalize_proposal_keys(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``payload`` with snake_case gas keys renamed to their camelCase form."""

    fields = dict(payload)
    for attr, key in _GAS_FIELDS:
        if attr not in fields:
            continue
        value = fields.pop(attr)
        if key in fields and fields[key] != value:
            raise ValidationError(f"Conflicting {attr} and {key}", field=key, value=[value, fields[key]])
        fields[key] = value
    return fields


class Operation(IntEnum):
    CALL = 0
    DELEGATE_CALL = 1


@dataclass
class DeploymentRequest:
    contract_name: str
    bytecode: str
    constructor_args: Sequence[Any] = ()
    value: Optional[str] = None
    metadata: Optional[Mapping[str, Any]] = None


@dataclass
class UpgradeRequest:
    proxy_address: str
    new_implementation: str
    function_selector: str = "upgradeTo(address)"
    upgrade_args: Sequence[Any] = ()


@dataclass
class SafeTransactionProposal:
    to: str
    value: str
    data: str
    operation: int = Operation.CALL
    safe_tx_gas: Optional[str] = None
    base_gas: Optional[str] = None
    gas_price: Optional[str] = None
    gas_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "to": self.to,
            "value": self.value,
            "data": self.data,
            "operation": int(self.operation),
        }
        for attr, key in _GAS_FIELDS:
            current = getattr(self, attr)
            if current is not None:
                payload[key] = current
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SafeTransactionProposal":
        payload = normalize_proposal_keys(payload)
        gas = {attr: payload.get(key) for attr, key in _GAS_FIELDS}
        return cls(
            to=payload["to"],
            value=payload.get("value", "0"),
            data=payload.get("data", "0x"),
            operation=payload.get("operation", Operation.CALL),
            **gas,
        )


@dataclass
class DeploymentMetadata:
    pr: Optional[str] = None
    commit: Optional[str] = None
    deployer: Optional[str] = None
    contract_name: Optional[str] = None
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "pr": self.pr,
            "commit": self.commit,
            "deployer": self.deployer,
            "contractName": self.contract_name,
            "timestamp": self.timestamp,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass
class DeploymentProposal:
    """Result of a single deployment build: the proposal and its own metadata."""

    proposal: SafeTransactionProposal
    metadata: DeploymentMetadata


@dataclass
class BatchProposal:
    transactions: List[SafeTransactionProposal]
    metadata: DeploymentMetadata = field(default_factory=DeploymentMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": [tx.to_dict() for tx in self.transactions],
            "metadata": self.metadata.to_dict(),
        }


# -- gate inputs / outputs -------------------------------------------------
@dataclass(frozen=True)
class SigningConditions:
    """Which checks are *required*; these flags are not results."""

    policy_required: bool = False
    tests_required: bool = False
    pr_merge_required: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SigningConditions":
        return cls(
            policy_required=bool(payload.get("opaPolicyPassed", False)),
            tests_required=bool(payload.get("testsPassed", False)),
            pr_merge_required=bool(payload.get("prMerged", False)),
        )


@dataclass(frozen=True)
class PolicyParams:
    policy_endpoint: str
    deployment_config: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TestResultParams:
    __test__ = False

    test_results_url: str


@dataclass(frozen=True)
class GitHubParams:
    repo_owner: str
    repo_name: str
    pr_number: int
    github_token: str = field(repr=False)


@dataclass
class VerificationResult:
    opa_policy_passed: bool = False
    tests_passed: bool = False
    pr_merged: bool = False

    @property
    def all_met(self) -> bool:
        return self.opa_policy_passed and self.tests_passed and self.pr_merged

    def to_dict(self) -> Dict[str, bool]:
        return {
            "opaPolicyPassed": self.opa_policy_passed,
            "testsPassed": self.tests_passed,
            "prMerged": self.pr_merged,
        }


__all__ = [
    "BatchProposal",
    "DeploymentMetadata",
    "DeploymentProposal",
    "DeploymentRequest",
    "GitHubParams",
    "Operation",
    "PolicyParams",
    "SafeTransactionProposal",
    "SigningConditions",
    "TestResultParams",
    "UpgradeRequest",
    "VerificationResult",
    "ZERO_ADDRESS",
]
