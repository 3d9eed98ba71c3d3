#!/usr/bin/env python3
# ============================================================================
# CLI PROVISIONING TOOL
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Tool - Plan and apply deployments from the command line
# PURPOSE: Entry point for operators and automation pipelines
# CREATED: 17 OCT 2026
# ============================================================================
"""
Plan and apply deployment definitions.

Usage:
    # List shipped deployments
    python tools/provision.py list

    # Validate configuration without touching any resource
    python tools/provision.py validate forensic_capture --params params/dev.yaml

    # Show active/skipped nodes and ready groups
    python tools/provision.py plan forensic_capture --params params/dev.yaml --json

    # Dry-run apply against the in-memory provider, with an injected failure
    python tools/provision.py apply forensic_capture --params params/dev.yaml --fail capture_vm

    # Apply against Azure
    FCP_PARAM_SUBSCRIPTION_ID=... FCP_PARAM_TENANT_ID=... \\
        python tools/provision.py apply forensic_capture --params params/prod.yaml --provider azure

Exit codes:
    0   Success
    1   Configuration error (nothing was applied)
    2   Run finished with failed nodes
    130 Cancelled

Logs go to stderr; --json results go to stdout.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Any, Dict, List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.contracts import RunStatus
from core.errors import (
    ConfigurationError,
    DefinitionValidationError,
    ParameterValidationError,
    PlanValidationError,
)
from core.logging import configure_logging, get_logger, ComponentType
from core.models import DeploymentDefinition, RunResult
from orchestrator import DeploymentPlan, ProvisioningRunner
from providers import PROVIDER_NAMES, InMemoryProvider, create_provider
from services import DeploymentService, ParameterService

logger = get_logger("tools.provision", ComponentType.CLI)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUN_FAILED = 2
EXIT_CANCELLED = 130


# ============================================================================
# HELPERS
# ============================================================================

def load_inputs(args: argparse.Namespace):
    """Resolve the deployment and its parameter set from CLI arguments."""
    deployments = DeploymentService(args.deployments_dir)
    definition = deployments.resolve(args.deployment)

    parameters = ParameterService()
    values: Dict[str, Any] = {}
    for path in args.params or []:
        values.update(parameters.load_file(path))
    overrides = parameters.parse_overrides(args.set or [])
    params = parameters.resolve(definition, values=values, overrides=overrides)
    return definition, params


def build_provider(args: argparse.Namespace, params):
    """Create the provider selected on the command line."""
    if args.provider == "azure":
        subscription_id = params.get("subscription_id") or os.environ.get("AZURE_SUBSCRIPTION_ID")
        return create_provider("azure", subscription_id=subscription_id)

    if args.provider == "registry":
        return create_provider("registry")

    kwargs = {}
    if params.get("subscription_id"):
        kwargs["subscription_id"] = params["subscription_id"]
    if params.get("tenant_id"):
        kwargs["tenant_id"] = params["tenant_id"]
    provider = InMemoryProvider(**kwargs)
    for node_id in args.fail or []:
        provider.fail(node_id, f"Injected failure for {node_id}")
    return provider


def emit(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def print_plan(plan: DeploymentPlan) -> None:
    print(f"Deployment: {plan.deployment_id} v{plan.definition.version}")
    if plan.selected_variants:
        print("Selected variants:")
        for capability, node_id in sorted(plan.selected_variants.items()):
            print(f"  {capability:<24} -> {node_id}")
    print(f"Active nodes:  {len(plan.active)}")
    print(f"Skipped nodes: {', '.join(sorted(plan.skipped)) or '-'}")
    print("Ready groups:")
    for index, group in enumerate(plan.groups, start=1):
        print(f"  {index:2d}. {', '.join(sorted(group))}")


def print_result(result: RunResult) -> None:
    print(f"Run {result.run_id}: {result.status.value}")
    for node_id in sorted(result.nodes):
        state = result.nodes[node_id]
        detail = ""
        if state.skip_reason:
            detail = f" ({state.skip_reason.value}"
            if state.failed_dependency:
                detail += f": {state.failed_dependency}"
            detail += ")"
        elif state.error_message:
            detail = f" ({state.error_type}: {state.error_message})"
        elif state.changed is False:
            detail = " (unchanged)"
        print(f"  {state.status.value:<10} {node_id}{detail}")
    if result.outputs:
        absent = set(result.to_dict()["absent_outputs"])
        print("Outputs:")
        for name, value in sorted(result.outputs.items()):
            rendered = "<absent>" if name in absent else value
            print(f"  {name} = {rendered}")
    if result.error_message:
        print(f"Error: {result.error_message}")


def exit_code_for(result: Optional[RunResult]) -> int:
    if result is None:
        return EXIT_CANCELLED
    if result.status == RunStatus.SUCCEEDED:
        return EXIT_OK
    if result.status == RunStatus.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_RUN_FAILED


def report_config_error(error: Exception, as_json: bool) -> int:
    if isinstance(error, PlanValidationError):
        problems: List[str] = [str(e) for e in error.errors]
    elif isinstance(error, (ParameterValidationError, DefinitionValidationError)):
        problems = list(error.problems)
    else:
        problems = [str(error)]
    if as_json:
        emit({"status": "invalid", "errors": problems})
    else:
        print("Configuration errors:", file=sys.stderr)
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
    return EXIT_CONFIG_ERROR


# ============================================================================
# COMMANDS
# ============================================================================

def cmd_list(args: argparse.Namespace) -> int:
    deployments: List[DeploymentDefinition] = DeploymentService(args.deployments_dir).list_all()
    if args.json:
        emit({
            "deployments": [
                {
                    "deployment_id": d.deployment_id,
                    "name": d.name,
                    "version": d.version,
                    "nodes": len(d.nodes),
                }
                for d in deployments
            ]
        })
    else:
        for d in deployments:
            print(f"{d.deployment_id:<28} v{d.version}  {d.name} ({len(d.nodes)} nodes)")
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    try:
        definition, params = load_inputs(args)
        runner = ProvisioningRunner(InMemoryProvider())
        plan = runner.plan(definition, params)
    except (ConfigurationError, KeyError) as e:
        return report_config_error(e, args.json)

    if args.json:
        emit({"status": "valid", "deployment_id": plan.deployment_id})
    else:
        print(f"{plan.deployment_id}: valid ({len(plan.active)} active, {len(plan.skipped)} skipped)")
    return EXIT_OK


def cmd_plan(args: argparse.Namespace) -> int:
    try:
        definition, params = load_inputs(args)
        plan = ProvisioningRunner(InMemoryProvider()).plan(definition, params)
    except (ConfigurationError, KeyError) as e:
        return report_config_error(e, args.json)

    if args.json:
        emit(plan.to_dict())
    else:
        print_plan(plan)
    return EXIT_OK


def cmd_apply(args: argparse.Namespace) -> int:
    try:
        definition, params = load_inputs(args)
        provider = build_provider(args, params)
        runner = ProvisioningRunner(
            provider,
            max_concurrency=args.max_concurrency,
            apply_timeout_seconds=args.timeout,
        )
        plan = runner.plan(definition, params)
    except (ConfigurationError, KeyError, ValueError) as e:
        return report_config_error(e, args.json)

    logger.info(f"Applying {plan.deployment_id}: {len(plan.active)} active nodes via {args.provider}")

    try:
        result = asyncio.run(runner.apply(plan, run_id=args.run_id))
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.warning("Run interrupted; in-flight applies were allowed to finish")
        result = runner.last_result

    if result is not None:
        if args.json:
            emit(result.to_dict())
        else:
            print_result(result)
    return exit_code_for(result)


# ============================================================================
# MAIN
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Plan and apply forensic capture deployments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s list
  %(prog)s plan forensic_capture --params params/dev.yaml
  %(prog)s apply forensic_capture --params params/dev.yaml --set enable_automation=false
        """,
    )
    parser.add_argument(
        "--log-level", "-l",
        default=os.environ.get("LOG_LEVEL", "WARNING"),
        help="Log level (default: WARNING, env LOG_LEVEL)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON lines on stderr",
    )
    parser.add_argument(
        "--deployments-dir", "-d",
        help="Directory of deployment YAML files (default: FCP_DEPLOYMENTS_DIR or ./deployments)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="List available deployments")
    p_list.add_argument("--json", action="store_true", help="JSON output")
    p_list.set_defaults(func=cmd_list)

    for name, func, help_text in (
        ("validate", cmd_validate, "Check configuration without applying"),
        ("plan", cmd_plan, "Show the plan without applying"),
        ("apply", cmd_apply, "Apply a deployment"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("deployment", help="Deployment ID or path to a YAML file")
        p.add_argument(
            "--params", "-p",
            action="append",
            help="Parameter file (YAML or JSON); repeatable, later files win",
        )
        p.add_argument(
            "--set", "-s",
            action="append",
            metavar="KEY=VALUE",
            help="Override one parameter; repeatable",
        )
        p.add_argument("--json", action="store_true", help="JSON output")
        p.set_defaults(func=func)

        if name == "apply":
            p.add_argument(
                "--provider",
                choices=PROVIDER_NAMES,
                default="memory",
                help="Apply backend (default: memory)",
            )
            p.add_argument("--max-concurrency", type=int, help="Concurrent provider calls")
            p.add_argument("--timeout", type=int, help="Default per-node apply timeout (seconds)")
            p.add_argument("--run-id", help="Run ID (generated if not set)")
            p.add_argument(
                "--fail",
                action="append",
                metavar="NODE",
                help="Inject a failure for NODE (memory provider only); repeatable",
            )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, json_output=args.log_json)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
