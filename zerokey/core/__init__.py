"""Core managers powering ZeroKey."""

from .executor import LocalAccountExecutor, SigningExecutor, pkp_eth_address, validate_pkp_public_key
from .gate import GateOutcome, GateParams, GateResult, GateState, SigningGate, run_signing_gate
from .ledger import ForensicLedger
from .proposal_builder import ProposalBuilder
from .storage import FileProposalStore, InMemoryProposalStore, get_store
from .verifier import ConditionVerifier

__all__ = [
    "ConditionVerifier",
    "FileProposalStore",
    "ForensicLedger",
    "GateOutcome",
    "GateParams",
    "GateResult",
    "GateState",
    "InMemoryProposalStore",
    "LocalAccountExecutor",
    "ProposalBuilder",
    "SigningExecutor",
    "SigningGate",
    "get_store",
    "pkp_eth_address",
    "run_signing_gate",
    "validate_pkp_public_key",
]
