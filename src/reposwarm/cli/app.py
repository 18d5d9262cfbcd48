"""CLI application entry point and command routing for reposwarm.

This module is the **sole error boundary** for the entire application.
It catches :class:`~reposwarm.exceptions.ReposwarmError`, ``KeyboardInterrupt``,
and any unexpected ``Exception``, rendering user-friendly messages via Rich
and returning well-defined exit codes.

Architecture notes
------------------
* No business logic lives here — all work is delegated to the core and
  infrastructure layers.
* Human output goes to the stderr console; stdout is reserved for
  ``--json`` documents.
* This module is the only place that translates between the domain world
  and the OS process exit code.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from reposwarm.cli import exit_codes
from reposwarm.cli.console import console, escape
from reposwarm.exceptions import EnvironmentError, ReposwarmError
from reposwarm.version import __version__

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    """Construct the top-level argument parser.

    Sub-commands:
    * ``reposwarm new [--local]``  — guides, agent hand-off or automated setup
    * ``reposwarm doctor``         — environment diagnostics
    * ``reposwarm stop``           — stop services started by ``new --local``
    """
    parser = argparse.ArgumentParser(
        prog="reposwarm",
        description="Set up and manage a local RepoSwarm installation.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging on stderr.",
    )
    sub = parser.add_subparsers(dest="command")

    new = sub.add_parser("new", help="Set up a new local RepoSwarm installation.")
    new.add_argument("--dir", default=None, help="Installation directory (default: ./reposwarm).")
    new.add_argument(
        "--local",
        action="store_true",
        help="Automated local setup: start Temporal, API, worker and UI.",
    )
    new.add_argument("--json", action="store_true", help="Emit a JSON document on stdout.")
    new.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation.")
    new.add_argument(
        "--agent",
        action="store_true",
        help="Launch the detected coding agent without asking.",
    )
    new.add_argument(
        "--guide-only",
        action="store_true",
        help="Only write the guide files.",
    )
    new.add_argument("--skip-worker", action="store_true", help="Do not set up the worker.")
    new.add_argument("--skip-ui", action="store_true", help="Do not set up the UI.")

    sub.add_parser("doctor", help="Check the local environment.")

    stop = sub.add_parser("stop", help="Stop services started by `new --local`.")
    stop.add_argument("--dir", default=None, help="Installation directory (default: ./reposwarm).")
    return parser


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _import_questionary() -> Any:
    """Import questionary lazily for interactive confirmation."""
    try:
        import questionary
    except ModuleNotFoundError as exc:
        raise EnvironmentError(
            "questionary is not installed. Install with: pip install questionary",
            hint="Or pass --yes to skip confirmation prompts.",
        ) from exc
    return questionary


def _confirm(question: str, *, default: bool = True) -> bool:
    """Ask a yes/no question; a cancelled prompt counts as "no"."""
    questionary = _import_questionary()
    answer: bool | None = questionary.confirm(question, default=default).ask()
    return bool(answer)


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")
    sys.stdout.flush()


def _install_dir(raw: str | None, env: Any) -> Path:
    if raw:
        return Path(raw).expanduser().resolve()
    return env.default_install_dir()


def _service_config(env: Any) -> Any:
    """Merge local-setup overrides from the CLI config file with the host.

    The host's AWS region is only a fallback: a region saved in the CLI
    config file or set through ``REPOSWARM_REGION`` wins.
    """
    from reposwarm.config import ServiceConfig
    from reposwarm.infra.cli_config import load_cli_config

    overrides = load_cli_config().local_overrides()
    if "region" not in overrides and not os.environ.get("REPOSWARM_REGION"):
        overrides["region"] = env.aws_region
    return ServiceConfig(**overrides)


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------

def _handle_local_setup(env: Any, install_dir: Path, args: argparse.Namespace) -> int:
    """Dispatch ``new --local``.

    Flow:
    1. Build the service configuration and infra collaborators.
    2. Confirm with the user (unless ``--yes`` or ``--json``).
    3. Run the step orchestrator.
    4. Print a summary, or the result document for ``--json``.
    """
    from reposwarm.cli.printer import RichPrinter, SilentPrinter
    from reposwarm.core.orchestrator import StepOrchestrator
    from reposwarm.core.provisioner import ServiceProvisioner
    from reposwarm.core.services import UI, WORKER
    from reposwarm.exceptions import SetupAbortedError
    from reposwarm.infra.cli_config import write_local_cli_config
    from reposwarm.infra.health_probe import HttpHealthProbe
    from reposwarm.infra.process import SubprocessRunner

    config = _service_config(env)
    skip = {name for name, flag in ((WORKER, args.skip_worker), (UI, args.skip_ui)) if flag}

    if not args.json:
        console.print("\n[bold]RepoSwarm Local Setup[/bold]")
        console.print(f"  Install directory: [cyan]{escape(str(install_dir))}[/cyan]")
        if not args.yes and not _confirm("Clone, build and start the local stack here?"):
            console.print("[yellow]Setup cancelled.[/yellow]")
            return exit_codes.SUCCESS

    printer = SilentPrinter() if args.json else RichPrinter()
    health = HttpHealthProbe()
    orchestrator = StepOrchestrator(
        config,
        ServiceProvisioner(SubprocessRunner(), health, printer),
        health,
        printer,
        write_local_cli_config,
    )
    try:
        result = orchestrator.run(env, install_dir, skip=skip)
    except SetupAbortedError as exc:
        if args.json:
            _emit_json(exc.result.to_dict())
            return exit_codes.GENERAL_ERROR
        raise
    finally:
        health.close()

    if args.json:
        _emit_json(result.to_dict())
        return exit_codes.SUCCESS

    _print_setup_summary(result, config)
    return exit_codes.SUCCESS


def _print_setup_summary(result: Any, config: Any) -> None:
    from reposwarm.core.models import StepStatus
    from reposwarm.core.services import API, TEMPORAL, UI
    from reposwarm.infra.cli_config import mask_token

    urls = {
        TEMPORAL: ("Temporal UI", config.temporal_ui_url),
        API: ("API", config.api_url),
        UI: ("UI", config.ui_url),
    }
    console.print("\n[bold green]RepoSwarm is running locally.[/bold green]\n")
    for name, (label, url) in urls.items():
        step = result.step(name)
        if step is not None and step.status is StepStatus.OK:
            console.print(f"  {label:<12} [cyan]{url}[/cyan]")
    console.print(f"  {'API token':<12} {mask_token(result.token)}")

    if result.handles:
        console.print("\n  Logs:")
        for handle in result.handles.values():
            console.print(f"    {handle.service:<8} {escape(str(handle.log_path))}")

    failed = [s for s in result.steps if s.status is StepStatus.FAIL]
    if failed:
        console.print("\n  [yellow]Some optional steps need attention:[/yellow]")
        for step in failed:
            first_line = step.message.splitlines()[0] if step.message else ""
            console.print(f"    {step.name}: {escape(first_line)}")

    console.print(f"\n  Health check:  [bold]curl {config.api_health_url}[/bold]")
    console.print("  Stop services: [bold]reposwarm stop[/bold]\n")


def _handle_guides(env: Any, install_dir: Path, args: argparse.Namespace) -> int:
    """Dispatch ``new`` without ``--local``: write guides, maybe launch an agent."""
    from reposwarm.cli.doctor import collect_checks
    from reposwarm.core.guide import AGENT_DISPLAY_NAMES, agent_command, write_guides

    config = _service_config(env)
    missing = env.missing_deps()
    agent = env.agent_name()
    guide_path, agent_path = write_guides(env, install_dir, config)

    if args.json:
        _emit_json({
            "environment": dataclasses.asdict(env),
            "installDir": str(install_dir),
            "missing": missing,
            "agentAvailable": bool(agent),
            "agent": agent,
            "guidePath": str(guide_path),
            "agentGuidePath": str(agent_path),
        })
        return exit_codes.SUCCESS

    console.print("\n[bold]RepoSwarm New Installation[/bold]\n")
    for label, value, status in collect_checks(env):
        console.print(f"  {label:<16} {escape(value):<40} {status}")
    if missing:
        console.print("\n  [yellow]Missing dependencies:[/yellow]")
        for dep in missing:
            console.print(f"    {dep}")

    console.print(f"\n  [green]✓[/green] Generated {escape(str(guide_path))}")
    console.print(f"  [green]✓[/green] Generated {escape(str(agent_path))} (agent-friendly)")
    if args.guide_only:
        return exit_codes.SUCCESS

    display = AGENT_DISPLAY_NAMES.get(agent, agent)
    launch = args.agent
    if agent and not launch:
        launch = _confirm(f"{display} detected! Use it for interactive installation?")

    if launch and agent:
        try:
            command = agent_command(agent, install_dir)
        except ValueError:
            console.print(f"[yellow]{display} cannot be launched automatically.[/yellow]")
        else:
            from reposwarm.infra.process import SubprocessRunner

            console.print(f"\n  Launching [bold]{display}[/bold]...\n")
            SubprocessRunner().run_interactive(command, cwd=install_dir)
            console.print(f"\n  Agent finished. Check the API with: [bold]curl {config.api_health_url}[/bold]\n")
            return exit_codes.SUCCESS

    console.print("\n  [bold]Next steps:[/bold]\n")
    console.print(f"  1. Review the guide:     [cyan]{escape(str(guide_path))}[/cyan]")
    console.print("  2. Follow the steps to start each service")
    console.print("  3. Configure the CLI:    [cyan]reposwarm config set apiUrl "
                  f"{config.api_url}/v1[/cyan]")
    console.print(f"  4. Verify:               [cyan]curl {config.api_health_url}[/cyan]")
    console.print("\n  Or use automated setup:  [cyan]reposwarm new --local[/cyan]\n")
    return exit_codes.SUCCESS


def _handle_new(args: argparse.Namespace) -> int:
    from reposwarm.infra.environment_probe import detect

    env = detect()
    install_dir = _install_dir(args.dir, env)
    if args.local:
        return _handle_local_setup(env, install_dir, args)
    return _handle_guides(env, install_dir, args)


def _handle_doctor() -> int:
    """Dispatch the ``doctor`` diagnostics command."""
    from reposwarm.cli.doctor import run_doctor
    from reposwarm.infra.environment_probe import detect

    return run_doctor(detect())


def _handle_stop(args: argparse.Namespace) -> int:
    """Terminate the services recorded in pid files under the install dir."""
    from reposwarm.core.models import ProcessHandle
    from reposwarm.core.services import API, UI, WORKER
    from reposwarm.infra.environment_probe import detect

    install_dir = Path(args.dir).expanduser().resolve() if args.dir else detect().default_install_dir()
    found = False
    for service in (UI, WORKER, API):
        pid_path = install_dir / service / f"{service}.pid"
        if not pid_path.exists():
            continue
        found = True
        try:
            handle = ProcessHandle.from_pid_file(service, pid_path)
        except (OSError, ValueError) as exc:
            console.print(f"  [yellow]![/yellow] {service}: unreadable pid file ({escape(str(exc))})")
            continue
        if handle.terminate():
            console.print(f"  [green]✓[/green] Stopped {service} (pid {handle.pid})")
        else:
            console.print(f"  {service}: not running or not ours to stop")
        pid_path.unlink(missing_ok=True)

    if not found:
        console.print(f"No running services recorded under {escape(str(install_dir))}")
    else:
        console.print("Temporal keeps running; stop it with [bold]docker compose down[/bold] "
                      "in the temporal directory.")
    return exit_codes.SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Run the reposwarm CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.  Accepting *argv* enables deterministic testing without
        monkeypatching.

    Returns
    -------
    int
        OS process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    from reposwarm.utils.logging import configure_logging

    configure_logging(verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return exit_codes.SUCCESS
    if args.command == "doctor":
        return _handle_doctor()
    if args.command == "stop":
        return _handle_stop(args)
    return _handle_new(args)


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point.

    This function wraps :func:`main` and guarantees the process never
    exits with a raw stack trace during normal usage.
    """
    try:
        code = main()
        sys.exit(code)
    except ReposwarmError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {escape(exc.hint)}")
        logger.debug("Command failed", exc_info=exc)
        sys.exit(exit_codes.GENERAL_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {escape(str(exc))}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)
