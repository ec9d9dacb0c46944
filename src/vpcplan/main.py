import argparse
import json
import sys
from importlib.metadata import version

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from .core import DEFAULT_PARALLELISM
from .environment import (
    ResolvedEnvironment,
    compose_environment,
    find_cidr_overlaps,
    load_environment,
    make_state_handle,
)
from .errors import ConfigurationError, RemoteRejectionError, StateLockError
from .executor import apply_plan
from .logger import setup_logger
from .planner import Plan, build_destroy_plan, build_plan, detect_drift
from .provider import ComputeProvider
from .reporter import (
    generate_plan_report,
    plan_to_dict,
    render_drift_table,
    render_plan_table,
)
from .schemas.state import StateDocument

EXIT_ERROR = 1
EXIT_CHANGES = 2
EXIT_LOCKED = 3


def _plan_for(
    resolved: ResolvedEnvironment, state: StateDocument, refresh: bool
) -> Plan:
    if not refresh:
        return build_plan(resolved, state)
    provider = ComputeProvider(resolved.network.project_id)
    live, drifts = detect_drift(state, provider)
    return build_plan(resolved, state, live=live, drifts=drifts)


def _show_plan(plan: Plan, console: Console) -> None:
    if plan.drifts:
        console.print(render_drift_table(plan.drifts))
    if not plan.has_changes:
        console.print(f"[green]{plan.environment}: no changes.[/green]")
        return
    console.print(render_plan_table(plan))
    summary = ", ".join(f"{count} to {action}" for action, count in plan.summary().items())
    console.print(f"Plan: {summary}")


def _show_outputs(outputs: dict, console: Console) -> None:
    table = Table(title="Outputs")
    table.add_column("Output", style="cyan")
    table.add_column("Key")
    table.add_column("Value", style="green")
    for name in ("network_self_link", "network_name"):
        table.add_row(name, "", str(outputs.get(name) or "-"))
    for name in ("subnets", "firewall_rules", "routes"):
        for key, link in sorted((outputs.get(name) or {}).items()):
            table.add_row(name, key, link)
    console.print(table)


def cmd_validate(args: argparse.Namespace, log_console: Console, out_console: Console) -> int:
    configs = [load_environment(path) for path in args.env_files]
    for config in configs:
        resolved = compose_environment(config, strict=args.strict)
        out_console.print(
            f"[green]✓[/green] {resolved.name}: network {resolved.network.name}, "
            f"{len(resolved.subnets)} subnet(s), {len(resolved.firewall_rules)} "
            f"firewall rule(s), {len(resolved.routes)} route(s)"
        )

    overlaps = find_cidr_overlaps(configs)
    for o in overlaps:
        log_console.print(
            f"[bold red]Overlap:[/bold red] {o.environment}/{o.subnet} ({o.cidr}) "
            f"and {o.other_environment}/{o.other_subnet} ({o.other_cidr})"
        )
    return EXIT_ERROR if overlaps else 0


def cmd_plan(args: argparse.Namespace, log_console: Console, out_console: Console) -> int:
    config = load_environment(args.env_file)
    resolved = compose_environment(config, strict=args.strict)
    state = resolved.state.read()
    plan = _plan_for(resolved, state, args.refresh)

    if args.json:
        print(json.dumps(plan_to_dict(plan), indent=2, default=str))
    else:
        _show_plan(plan, out_console)

    if args.html:
        generate_plan_report(plan, args.html)
        log_console.print(f"Report saved to [bold]{args.html}[/bold]")

    if args.detailed_exitcode and plan.has_changes:
        return EXIT_CHANGES
    return 0


def cmd_apply(args: argparse.Namespace, log_console: Console, out_console: Console) -> int:
    config = load_environment(args.env_file)
    resolved = compose_environment(config, strict=args.strict)

    with resolved.state.locked("apply", timeout=args.lock_timeout):
        state = resolved.state.read()
        plan = _plan_for(resolved, state, args.refresh)
        _show_plan(plan, out_console)
        if not plan.has_changes:
            return 0
        if not args.yes and not Confirm.ask(f"Apply these changes to {resolved.name}?"):
            log_console.print("[yellow]Apply cancelled.[/yellow]")
            return 0

        provider = ComputeProvider(resolved.network.project_id)
        state = apply_plan(plan, provider, resolved.state, parallelism=args.parallelism)

    log_console.print(f"[bold green]Applied[/bold green] {len(plan.operations)} operation(s).")
    _show_outputs(state.outputs, out_console)
    return 0


def cmd_destroy(args: argparse.Namespace, log_console: Console, out_console: Console) -> int:
    config = load_environment(args.env_file)
    handle = make_state_handle(config)

    with handle.locked("destroy", timeout=args.lock_timeout):
        state = handle.read()
        plan = build_destroy_plan(state)
        _show_plan(plan, out_console)
        if not plan.has_changes:
            return 0
        if not args.yes and not Confirm.ask(
            f"[bold red]Destroy every resource in {config.environment}?[/bold red]"
        ):
            log_console.print("[yellow]Destroy cancelled.[/yellow]")
            return 0

        apply_plan(plan, ComputeProvider(config.project_id), handle, parallelism=args.parallelism)

    log_console.print(f"[bold green]Destroyed[/bold green] {config.environment}.")
    return 0


def cmd_output(args: argparse.Namespace, log_console: Console, out_console: Console) -> int:
    config = load_environment(args.env_file)
    state = make_state_handle(config).read()
    outputs = state.outputs or state.compute_outputs()
    if args.json:
        print(json.dumps(outputs, indent=2))
    else:
        _show_outputs(outputs, out_console)
    return 0


def cmd_force_unlock(args: argparse.Namespace, log_console: Console, out_console: Console) -> int:
    config = load_environment(args.env_file)
    make_state_handle(config).force_unlock(args.lock_id)
    log_console.print(f"Lock {args.lock_id} released for {config.environment}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vpcplan",
        description="vpcplan: declarative GCP VPC environments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check one or more environments (also checks CIDR isolation between them)
  vpcplan validate environments/dev.yaml environments/prod.yaml

  # Show what would change, comparing against the live project
  vpcplan plan environments/dev.yaml --refresh

  # Apply without prompting, eight operations at a time
  vpcplan apply environments/dev.yaml --yes --parallelism 8
""",
    )
    try:
        ver = version("vpcplan")
    except Exception:
        ver = "unknown"
    parser.add_argument("--version", action="version", version=f"vpcplan v{ver}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Resolve and validate environment files")
    p.add_argument("env_files", nargs="+", metavar="ENV_FILE")
    p.add_argument("--strict", action="store_true", help="Reject routes with two next hops")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("plan", help="Show the operations needed to converge")
    p.add_argument("env_file", metavar="ENV_FILE")
    p.add_argument("--refresh", action="store_true", help="Compare against live resources")
    p.add_argument("--json", action="store_true", help="Output the plan as JSON")
    p.add_argument("--html", help="Write an HTML plan report")
    p.add_argument(
        "--detailed-exitcode",
        action="store_true",
        help=f"Exit {EXIT_CHANGES} when the plan has changes",
    )
    p.add_argument("--strict", action="store_true", help="Reject routes with two next hops")
    p.set_defaults(func=cmd_plan)

    for name, func, text in (
        ("apply", cmd_apply, "Apply the plan"),
        ("destroy", cmd_destroy, "Delete every resource recorded in state"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("env_file", metavar="ENV_FILE")
        p.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
        p.add_argument(
            "--parallelism",
            type=int,
            default=DEFAULT_PARALLELISM,
            help=f"Concurrent operations per phase (default: {DEFAULT_PARALLELISM})",
        )
        p.add_argument(
            "--lock-timeout",
            type=float,
            default=0.0,
            help="Seconds to wait for the state lock (default: fail immediately)",
        )
        if name == "apply":
            p.add_argument("--refresh", action="store_true", help="Compare against live resources")
            p.add_argument("--strict", action="store_true", help="Reject routes with two next hops")
        p.set_defaults(func=func)

    p = sub.add_parser("output", help="Print outputs recorded in state")
    p.add_argument("env_file", metavar="ENV_FILE")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_output)

    p = sub.add_parser("force-unlock", help="Release a stale state lock")
    p.add_argument("env_file", metavar="ENV_FILE")
    p.add_argument("lock_id")
    p.set_defaults(func=cmd_force_unlock)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        setup_logger(verbose=True)

    log_console = Console(stderr=True)
    out_console = Console(quiet=getattr(args, "json", False))

    try:
        code = args.func(args, log_console, out_console)
    except ConfigurationError as e:
        log_console.print("[bold red]Configuration error[/bold red] (no changes were made):")
        for issue in e.issues:
            log_console.print(f"  • {escape(str(issue))}")
        sys.exit(EXIT_ERROR)
    except StateLockError as e:
        log_console.print(f"[bold red]State locked:[/bold red] {escape(e.message)}")
        sys.exit(EXIT_LOCKED)
    except RemoteRejectionError as e:
        log_console.print(f"[bold red]Rejected by the Compute API:[/bold red] {escape(e.message)}")
        log_console.print("Operations applied before the failure were recorded in state.")
        sys.exit(EXIT_ERROR)
    except KeyboardInterrupt:
        log_console.print("\n[bold red]Operation cancelled by user.[/bold red]")
        sys.exit(130)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
