"""Deterministic Safe transaction proposals for deployments and upgrades.

The builder never touches a private key or the network: it only shapes call
data, validates proposal structure, hashes proposals and derives CREATE2
addresses with the Safe as deployer.
"""

from __future__ import annotations

import json
import re
import threading
import time
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from web3 import Web3

from ..errors import InvalidAddressError, InvalidChainIdError, ValidationError
from ..logbook import ForensicLogger
from ..models import (
    ZERO_ADDRESS,
    BatchProposal,
    DeploymentMetadata,
    DeploymentProposal,
    DeploymentRequest,
    Operation,
    SafeTransactionProposal,
    UpgradeRequest,
    normalize_proposal_keys,
)
from ..utils.hexutil import is_well_formed_address, strip_0x, to_hex_string
from .abi_codec import encode_call, encode_constructor_args

ProposalLike = Union[SafeTransactionProposal, Mapping[str, Any]]

_DECIMAL = re.compile(r"[0-9]+")
_GAS_KEYS = ("safe_tx_gas", "base_gas", "gas_price", "gas_token")


def _hex_bytes(value: Union[str, bytes], *, field: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {field}", field=field, value=value)
    try:
        return bytes.fromhex(strip_0x(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: not a hex string", field=field, value=value) from exc


def _as_fields(proposal: ProposalLike) -> Dict[str, Any]:
    if isinstance(proposal, SafeTransactionProposal):
        fields = proposal.to_dict()
        fields["operation"] = proposal.operation
        return fields
    return normalize_proposal_keys(proposal)


class ProposalBuilder:
    """Create Safe transaction proposals for one Safe on one chain.

    Each deployment build returns its own metadata snapshot; the most recent
    snapshot is also retained (under a lock) for :meth:`serialize_proposal`
    and :meth:`create_batch_proposal` callers that do not pass one.
    """

    def __init__(
        self,
        safe_address: str,
        chain_id: int,
        *,
        default_gas: Optional[Mapping[str, str]] = None,
        logger: Optional[ForensicLogger] = None,
    ) -> None:
        if not is_well_formed_address(safe_address):
            raise InvalidAddressError("safe address", safe_address)
        if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
            raise InvalidChainIdError(chain_id)
        gas = dict(default_gas or {})
        unknown = set(gas) - set(_GAS_KEYS)
        if unknown:
            raise ValidationError(f"Unknown gas settings: {sorted(unknown)}", field="default gas", value=sorted(unknown))
        self._safe_address = safe_address
        self._chain_id = chain_id
        self._default_gas = gas
        self._logger = logger
        self._lock = threading.Lock()
        self._last_metadata = DeploymentMetadata()

    @property
    def safe_address(self) -> str:
        return self._safe_address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def last_metadata(self) -> DeploymentMetadata:
        with self._lock:
            return replace(self._last_metadata)

    def _log(self, action: str, **fields: Any) -> None:
        if self._logger is not None:
            self._logger.info("BUILDER", action, safe=self._safe_address, chain_id=self._chain_id, **fields)

    # -- proposals --------------------------------------------------------
    def create_deployment_proposal(self, request: DeploymentRequest) -> DeploymentProposal:
        """Build a CREATE-style deployment routed through the Safe.

        ``data`` is the init bytecode followed by the ABI-encoded constructor
        arguments; ``to`` is the zero address.
        """

        code = _hex_bytes(request.bytecode, field="bytecode")
        encoded = encode_constructor_args(list(request.constructor_args or ()))
        data = to_hex_string(code + encoded)

        extra = dict(request.metadata or {})
        metadata = DeploymentMetadata(
            pr=None if extra.get("pr") is None else str(extra["pr"]),
            commit=extra.get("commit"),
            deployer=extra.get("deployer"),
            contract_name=request.contract_name,
            timestamp=int(time.time() * 1000),
        )
        with self._lock:
            self._last_metadata = metadata

        proposal = SafeTransactionProposal(
            to=ZERO_ADDRESS,
            value=request.value or "0",
            data=data,
            operation=Operation.CALL,
            **self._default_gas,
        )
        self._log(
            "deployment_proposal",
            contract=request.contract_name,
            args=len(request.constructor_args or ()),
            data_bytes=len(code) + len(encoded),
        )
        return DeploymentProposal(proposal=proposal, metadata=replace(metadata))

    def create_upgrade_proposal(self, request: UpgradeRequest) -> SafeTransactionProposal:
        """Build a call to the proxy's upgrade function."""

        if not is_well_formed_address(request.proxy_address):
            raise InvalidAddressError("proxy address", request.proxy_address)
        if not is_well_formed_address(request.new_implementation):
            raise InvalidAddressError("implementation address", request.new_implementation)

        call_data = encode_call(
            request.function_selector,
            [request.new_implementation, *(request.upgrade_args or ())],
        )
        proposal = SafeTransactionProposal(
            to=request.proxy_address,
            value="0",
            data=to_hex_string(call_data),
            operation=Operation.CALL,
            **self._default_gas,
        )
        self._log(
            "upgrade_proposal",
            proxy=request.proxy_address,
            implementation=request.new_implementation,
            selector=proposal.data[:10],
        )
        return proposal

    def create_batch_proposal(self, transactions: Sequence[SafeTransactionProposal]) -> BatchProposal:
        return BatchProposal(transactions=list(transactions), metadata=self.last_metadata)

    # -- checks and digests -----------------------------------------------
    def validate_proposal(self, proposal: ProposalLike) -> bool:
        """Structural check run before hashing or signing. Never raises."""

        try:
            fields = _as_fields(proposal)
            if not is_well_formed_address(fields.get("to")):
                return False
            value = fields.get("value")
            if isinstance(value, bool):
                return False
            if isinstance(value, int):
                if value < 0:
                    return False
            elif not isinstance(value, str) or not _DECIMAL.fullmatch(value):
                return False
            operation = fields.get("operation")
            if isinstance(operation, bool) or not isinstance(operation, int):
                return False
            if operation not in (Operation.CALL, Operation.DELEGATE_CALL):
                return False
            data = fields.get("data")
            if not isinstance(data, str) or not data.startswith("0x"):
                return False
            return True
        except Exception:
            return False

    @staticmethod
    def _canonical_fields(proposal: ProposalLike) -> List[Any]:
        fields = _as_fields(proposal)
        gas = fields.get("safeTxGas")
        return [
            str(fields["to"]),
            str(fields["value"]),
            str(fields["data"]),
            int(fields["operation"]),
            None if gas is None else str(gas),
        ]

    def generate_validation_hash(self, proposal: Union[ProposalLike, BatchProposal]) -> str:
        """Keccak-256 over ``[to, value, data, operation, safeTxGas]`` as compact JSON."""

        if isinstance(proposal, BatchProposal):
            canonical: Any = [self._canonical_fields(tx) for tx in proposal.transactions]
        else:
            canonical = self._canonical_fields(proposal)
        text = json.dumps(canonical, separators=(",", ":"), ensure_ascii=True)
        return Web3.to_hex(Web3.keccak(text=text))

    def calculate_deployment_address(self, bytecode: Union[str, bytes], salt: Union[str, bytes]) -> str:
        """CREATE2 address: ``keccak(0xff ++ safe ++ salt ++ keccak(bytecode))[12:]``."""

        salt_bytes = _hex_bytes(salt, field="salt")
        if len(salt_bytes) != 32:
            raise ValidationError("Invalid salt: expected 32 bytes", field="salt", value=salt)
        code_hash = Web3.keccak(_hex_bytes(bytecode, field="bytecode"))
        deployer = bytes.fromhex(strip_0x(self._safe_address))
        digest = Web3.keccak(b"\xff" + deployer + salt_bytes + code_hash)
        return Web3.to_checksum_address(Web3.to_hex(digest[12:]))

    # -- serialization ----------------------------------------------------
    def serialize_proposal(
        self,
        proposal: Union[SafeTransactionProposal, BatchProposal],
        metadata: Optional[DeploymentMetadata] = None,
    ) -> Dict[str, Any]:
        snapshot = metadata if metadata is not None else self.last_metadata
        return {
            "proposal": proposal.to_dict(),
            "metadata": snapshot.to_dict(),
            "safeAddress": self._safe_address,
            "chainId": self._chain_id,
            "validationHash": self.generate_validation_hash(proposal),
        }


__all__ = ["ProposalBuilder"]
