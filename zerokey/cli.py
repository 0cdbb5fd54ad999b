"""Headless automation CLI for ZeroKey."""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Settings
from .core import (
    ForensicLedger,
    GateOutcome,
    LocalAccountExecutor,
    ProposalBuilder,
    get_store,
    pkp_eth_address,
    run_signing_gate,
)
from .core.verifier import ConditionVerifier
from .errors import ConfigurationError, ValidationError, ZeroKeyError
from .logbook import get_logger
from .models import DeploymentRequest, SafeTransactionProposal, UpgradeRequest

console = Console()

EXIT_GATE_REFUSED = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zerokeyctl", description="ZeroKey proposal builder and signing gate")
    parser.add_argument("--version", action="store_true", help="Display version information and exit")
    parser.add_argument("--pretty", action="store_true", help="Render results as tables instead of JSON")
    subparsers = parser.add_subparsers(dest="command")

    def _safe_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--safe", help="Safe address (defaults to SAFE_ADDRESS)")
        sub.add_argument("--chain-id", type=int, help="Chain id (defaults to CHAIN_ID)")

    # Proposals ----------------------------------------------------------
    deploy = subparsers.add_parser("deploy", help="Build a deployment proposal")
    _safe_args(deploy)
    deploy.add_argument("--name", required=True, help="Contract name")
    deploy.add_argument("--bytecode", required=True, help="Init bytecode as hex, or @path to a file holding it")
    deploy.add_argument("--args", default="[]", help="Constructor arguments as a JSON list")
    deploy.add_argument("--value", default=None, help="Wei sent with the deployment")
    deploy.add_argument("--pr")
    deploy.add_argument("--commit")
    deploy.add_argument("--deployer")
    deploy.add_argument("--salt", help="32-byte salt; adds the CREATE2 address to the output")
    deploy.add_argument("--output", help="Write the serialized proposal to this path")
    deploy.add_argument("--store", action="store_true", help="Save the serialized proposal in the proposal store")

    upgrade = subparsers.add_parser("upgrade", help="Build an upgrade proposal")
    _safe_args(upgrade)
    upgrade.add_argument("--proxy", required=True)
    upgrade.add_argument("--implementation", required=True)
    upgrade.add_argument("--selector", default="upgradeTo(address)")
    upgrade.add_argument("--args", default="[]", help="Extra upgrade arguments as a JSON list")
    upgrade.add_argument("--output")
    upgrade.add_argument("--store", action="store_true")

    address = subparsers.add_parser("address", help="Predict a CREATE2 deployment address")
    _safe_args(address)
    address.add_argument("--bytecode", required=True)
    address.add_argument("--salt", required=True)

    validate = subparsers.add_parser("validate", help="Validate and hash a proposal file")
    _safe_args(validate)
    validate.add_argument("path")

    # Gate ---------------------------------------------------------------
    sign = subparsers.add_parser("sign", help="Run the conditional signing gate with the local dev signer")
    sign.add_argument("params", help="Path to the gate parameter JSON")

    pkp = subparsers.add_parser("pkp-address", help="Derive the Ethereum address of a PKP public key")
    pkp.add_argument("--public-key", help="Uncompressed public key (defaults to PKP_PUBLIC_KEY)")

    subparsers.add_parser("audit", help="Verify the forensic ledger chain")

    return parser


def _read_hex_argument(value: str) -> str:
    if value.startswith("@"):
        return Path(value[1:]).read_text(encoding="utf-8").strip()
    return value


def _json_list(raw: str, flag: str) -> list:
    try:
        values = json.loads(raw)
    except ValueError as exc:
        raise SystemExit(f"{flag} must be a JSON list: {exc}") from exc
    if not isinstance(values, list):
        raise SystemExit(f"{flag} must be a JSON list")
    return values


def _read_json(path: str, field: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValidationError(f"Cannot read {field}: {exc.strerror or exc}", field=field, value=path) from exc
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: not JSON ({exc})", field=field, value=path) from exc


def _dev_executor(settings: Settings) -> LocalAccountExecutor:
    private_key = settings.require_secret("ZEROKEY_DEV_SIGNER_KEY")
    try:
        return LocalAccountExecutor(private_key)
    except Exception as exc:
        raise ConfigurationError("ZEROKEY_DEV_SIGNER_KEY is not a valid private key") from exc


def _builder(args: argparse.Namespace, settings: Settings) -> ProposalBuilder:
    safe = args.safe or settings.safe_address
    chain_id = args.chain_id if args.chain_id is not None else settings.chain_id
    if safe is None or chain_id is None:
        raise SystemExit("Safe address and chain id are required (--safe/--chain-id or SAFE_ADDRESS/CHAIN_ID)")
    return ProposalBuilder(safe, chain_id, logger=get_logger())


def _persist(args: argparse.Namespace, settings: Settings, action: str, serialized: Dict[str, Any]) -> Dict[str, Any]:
    if args.output:
        Path(args.output).write_text(json.dumps(serialized, indent=2), encoding="utf-8")
        serialized = {**serialized, "output": args.output}
    if args.store:
        record = {"id": uuid.uuid4().hex, **serialized}
        get_store(settings).create(record)
        serialized = {**serialized, "id": record["id"]}
    ForensicLedger(service_name=settings.keyring_service).log(
        action,
        params={"safeAddress": serialized["safeAddress"], "chainId": serialized["chainId"], "to": serialized["proposal"]["to"]},
        result={"validationHash": serialized["validationHash"], "id": serialized.get("id")},
    )
    return serialized


def _handle_deploy(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    builder = _builder(args, settings)
    bytecode = _read_hex_argument(args.bytecode)
    request = DeploymentRequest(
        contract_name=args.name,
        bytecode=bytecode,
        constructor_args=_json_list(args.args, "--args"),
        value=args.value,
        metadata={"pr": args.pr, "commit": args.commit, "deployer": args.deployer},
    )
    built = builder.create_deployment_proposal(request)
    serialized = builder.serialize_proposal(built.proposal, built.metadata)
    if args.salt:
        serialized["predictedAddress"] = builder.calculate_deployment_address(bytecode, args.salt)
    return _persist(args, settings, "deployment_proposal", serialized)


def _handle_upgrade(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    builder = _builder(args, settings)
    proposal = builder.create_upgrade_proposal(
        UpgradeRequest(
            proxy_address=args.proxy,
            new_implementation=args.implementation,
            function_selector=args.selector,
            upgrade_args=_json_list(args.args, "--args"),
        )
    )
    return _persist(args, settings, "upgrade_proposal", builder.serialize_proposal(proposal))


def _handle_address(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    builder = _builder(args, settings)
    bytecode = _read_hex_argument(args.bytecode)
    return {"address": builder.calculate_deployment_address(bytecode, args.salt), "salt": args.salt}


def _handle_validate(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    payload = _read_json(args.path, "proposal file")
    raw = payload.get("proposal", payload) if isinstance(payload, dict) else payload
    safe = args.safe or (payload.get("safeAddress") if isinstance(payload, dict) else None) or settings.safe_address
    chain_id = args.chain_id or (payload.get("chainId") if isinstance(payload, dict) else None) or settings.chain_id
    if safe is None or chain_id is None:
        raise SystemExit("Safe address and chain id are required (--safe/--chain-id or SAFE_ADDRESS/CHAIN_ID)")
    builder = ProposalBuilder(safe, chain_id)
    valid = builder.validate_proposal(raw)
    result: Dict[str, Any] = {"valid": valid}
    if valid:
        proposal = SafeTransactionProposal.from_dict(raw)
        result["validationHash"] = builder.generate_validation_hash(proposal)
        expected = payload.get("validationHash") if isinstance(payload, dict) else None
        if expected is not None:
            result["hashMatches"] = expected == result["validationHash"]
    return result


def _handle_sign(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    params = _read_json(args.params, "gate parameters")
    if not isinstance(params, dict):
        raise ValidationError("Invalid gate parameters: expected a JSON object", field="gate parameters", value=args.params)
    github = params.get("github")
    if isinstance(github, dict) and not github.get("githubToken"):
        token = settings.secret("GITHUB_TOKEN")
        if token:
            params["github"] = {**github, "githubToken": token}
    if not params.get("publicKey") and settings.pkp_public_key:
        params["publicKey"] = settings.pkp_public_key
    params["sigName"] = params.get("sigName") or settings.sig_name

    logger = get_logger()
    executor = _dev_executor(settings)
    result = run_signing_gate(
        params,
        executor=executor,
        verifier=ConditionVerifier.from_settings(settings, logger=logger),
        logger=logger,
        ledger=ForensicLedger(service_name=settings.keyring_service),
    )
    response = result.to_response()
    response["outcome"] = result.outcome.value
    if result.outcome is GateOutcome.SIGNED:
        response["signature"] = executor.signatures.get(result.sig_name)
    return response


def _handle_pkp_address(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    public_key = args.public_key or settings.pkp_public_key
    if not public_key:
        raise SystemExit("--public-key or PKP_PUBLIC_KEY is required")
    return {"publicKey": public_key, "address": pkp_eth_address(public_key)}


def _handle_audit(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    ledger = ForensicLedger(service_name=settings.keyring_service)
    return {"path": str(ledger.path), "entries": sum(1 for _ in ledger.entries()), "valid": ledger.verify()}


def _render(result: Dict[str, Any]) -> None:
    table = Table(title="zerokeyctl")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")
    for key, value in result.items():
        rendered = json.dumps(value, indent=2, default=str) if isinstance(value, (dict, list)) else str(value)
        table.add_row(key, rendered)
    console.print(table)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(f"zerokeyctl {__version__}")
        return 0
    if args.command is None:
        parser.print_help()
        return 1
    handlers = {
        "deploy": _handle_deploy,
        "upgrade": _handle_upgrade,
        "address": _handle_address,
        "validate": _handle_validate,
        "sign": _handle_sign,
        "pkp-address": _handle_pkp_address,
        "audit": _handle_audit,
    }
    settings = Settings.from_env()
    try:
        result = handlers[args.command](args, settings)
    except ZeroKeyError as exc:
        json.dump({"error": exc.to_dict()}, sys.stderr, indent=2, default=str)
        sys.stderr.write("\n")
        return 1
    if args.pretty:
        _render(result)
    else:
        json.dump(result, sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")
    if args.command == "sign" and result.get("outcome") != GateOutcome.SIGNED.value:
        return EXIT_GATE_REFUSED
    return 0


__all__ = ["main"]
