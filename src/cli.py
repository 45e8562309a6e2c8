"""
Command line entry point
Usage: iagent-env {deploy,status,destroy,plan,help} [options]
"""

import argparse
import logging
import sys
import time
from typing import Callable, Dict, List, Optional

from config import ENV_VARS, EnvironmentConfig, get_config
from src.errors import ConfirmationDeclinedError, LifecycleError, ValidationError
from src.lifecycle import ResourceStatus
from src.orchestrator import CONFIRMATION_TOKEN, DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, Orchestrator
from src.plan import ResourcePlan, build_plan
from src.reporting import configure_logging, header, success

logger = logging.getLogger(__name__)

COMMANDS = {
    "deploy": "Bring the environment up and verify every resource is active",
    "status": "Show the live status of every planned resource",
    "destroy": "Tear the environment down (asks for confirmation)",
    "plan": "Print the resource plan for the current configuration",
    "help": "Show this help",
}

# argparse dest -> EnvironmentConfig field
OVERRIDES = {
    "region": "region",
    "cluster_name": "cluster_name",
    "instance_type": "node_instance_type",
    "min_size": "node_min_size",
    "max_size": "node_max_size",
    "desired_size": "node_desired_size",
    "spot": "use_spot_capacity",
    "monitoring": "enable_monitoring",
    "alarms": "enable_alarms",
    "domain": "domain_name",
    "frontend_registry": "enable_frontend_registry",
}


def default_collaborator(config: EnvironmentConfig, verbose: bool = False):
    from src.collaborator import PulumiCollaborator

    engine_logger = logging.getLogger("src.engine")
    return PulumiCollaborator(config, on_output=engine_logger.debug if verbose else None)


def build_parser() -> argparse.ArgumentParser:
    options = argparse.ArgumentParser(add_help=False)
    group = options.add_argument_group("configuration overrides")
    group.add_argument("--region", help="AWS region (AWS_REGION)")
    group.add_argument("--cluster-name", help="EKS cluster name (CLUSTER_NAME)")
    group.add_argument("--instance-type", help="Node instance type (NODE_INSTANCE_TYPE)")
    group.add_argument("--min-size", type=int, help="Minimum node count (NODE_MIN_SIZE)")
    group.add_argument("--max-size", type=int, help="Maximum node count (NODE_MAX_SIZE)")
    group.add_argument("--desired-size", type=int, help="Desired node count (NODE_DESIRED_SIZE)")
    group.add_argument("--spot", action=argparse.BooleanOptionalAction, default=None,
                       help="Use spot capacity (ENABLE_SPOT_INSTANCES)")
    group.add_argument("--monitoring", action=argparse.BooleanOptionalAction, default=None,
                       help="Create the dashboard (ENABLE_MONITORING)")
    group.add_argument("--alarms", action=argparse.BooleanOptionalAction, default=None,
                       help="Create the alarm topic (ENABLE_ALARMS)")
    group.add_argument("--domain", help="Domain for hosted zone and certificate (DOMAIN_NAME)")
    group.add_argument("--frontend-registry", action=argparse.BooleanOptionalAction, default=None,
                       help="Also create the frontend repository (ENABLE_FRONTEND_REGISTRY)")

    run = options.add_argument_group("run options")
    run.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT,
                     help=f"Seconds to wait for each resource (default: {DEFAULT_TIMEOUT})")
    run.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL,
                     help=f"Seconds between status polls (default: {DEFAULT_POLL_INTERVAL})")
    run.add_argument("-v", "--verbose", action="store_true", help="Debug output and Pulumi engine logs")

    parser = argparse.ArgumentParser(
        prog="iagent-env",
        description="Bring up, inspect and tear down the iAgent EKS environment",
        epilog=environment_help(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="command")
    for command, description in COMMANDS.items():
        subparsers.add_parser(command, parents=[options], help=description, description=description)
    return parser


def environment_help() -> str:
    lines = ["environment variables:"]
    for env_var, (_, default) in ENV_VARS.items():
        lines.append(f"  {env_var:<26} default: {default or '(unset)'}")
    return "\n".join(lines)


def load_config(args: argparse.Namespace, environ=None) -> EnvironmentConfig:
    overrides = {field: getattr(args, dest, None) for dest, field in OVERRIDES.items()}
    return get_config(environ).with_overrides(**overrides)


def print_plan(plan: ResourcePlan) -> None:
    print(f"{'RESOURCE':<36} {'KIND':<12} DEPENDS ON")
    for node in plan:
        print(f"{node.name:<36} {node.kind:<12} {', '.join(node.depends_on) or '-'}")


def print_statuses(plan: ResourcePlan, statuses: Dict[str, ResourceStatus]) -> None:
    print(f"{'RESOURCE':<36} {'KIND':<12} STATUS")
    for node in plan:
        print(f"{node.name:<36} {node.kind:<12} {statuses[node.name].value}")


def report(state) -> None:
    for warning in state.warnings:
        logger.warning(warning)
    if state.succeeded:
        return
    logger.error("Stopped at phase: %s", state.phase.value)
    failed = state.failed_resources()
    if failed:
        logger.error("Failed resources: %s", ", ".join(failed))
    if state.error:
        logger.error(state.error)


def elapsed(started: float, clock: Callable[[], float] = time.monotonic) -> str:
    minutes, seconds = divmod(int(clock() - started), 60)
    return f"{minutes}m {seconds:02d}s"


def cmd_deploy(config: EnvironmentConfig, plan: ResourcePlan, orchestrator: Orchestrator, args) -> int:
    started = time.monotonic()
    header(logger, f"Deploying {config.cluster_name} to {config.region}")
    state = orchestrator.deploy(plan)
    report(state)
    logger.info("Deployment time: %s", elapsed(started))
    if not state.succeeded:
        return 1
    success(logger, "Environment deployed and verified")
    logger.info("Configure kubectl: aws eks update-kubeconfig --region %s --name %s",
                config.region, config.cluster_name)
    return 0


def cmd_status(config: EnvironmentConfig, plan: ResourcePlan, orchestrator: Orchestrator, args) -> int:
    header(logger, f"Status of {config.cluster_name} in {config.region}")
    print_statuses(plan, orchestrator.status(plan))
    return 0


def cmd_destroy(config: EnvironmentConfig, plan: ResourcePlan, orchestrator: Orchestrator, args,
                input_func: Callable[[str], str] = input) -> int:
    logger.warning("This will permanently delete the following resources of %s:", config.cluster_name)
    for node in reversed(plan.nodes):
        logger.warning("  - %s (%s)", node.name, node.kind)

    try:
        answer = input_func(f"Type '{CONFIRMATION_TOKEN}' to confirm: ")
    except EOFError:
        answer = None

    started = time.monotonic()
    try:
        state = orchestrator.destroy(plan, answer.strip() if answer else answer)
    except ConfirmationDeclinedError as e:
        logger.info(str(e))
        return 0

    report(state)
    logger.info("Teardown time: %s", elapsed(started))
    if not state.succeeded:
        return 1
    success(logger, "Environment torn down; no billable resources remain")
    return 0


def main(argv: Optional[List[str]] = None, collaborator_factory=None,
         input_func: Callable[[str], str] = input, environ=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return 0

    configure_logging(args.verbose)

    try:
        config = load_config(args, environ)
        plan = build_plan(config)
    except ValidationError as e:
        logger.error("Invalid configuration (%s, %s): %s", e.kind, e.field, e)
        return 1

    if args.command == "plan":
        print_plan(plan)
        return 0

    collaborator_factory = collaborator_factory or default_collaborator
    orchestrator = Orchestrator(
        collaborator_factory(config, args.verbose),
        poll_interval=args.poll_interval,
        timeout=args.timeout,
        app_namespace=config.app_namespace,
        log_group_name=config.log_group_name,
    )

    try:
        if args.command == "deploy":
            return cmd_deploy(config, plan, orchestrator, args)
        if args.command == "status":
            return cmd_status(config, plan, orchestrator, args)
        return cmd_destroy(config, plan, orchestrator, args, input_func)
    except LifecycleError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
