"""``reposwarm doctor`` — environment diagnostics command.

Gathers a host snapshot and renders a Rich table summarising whether
the machine can run the local RepoSwarm stack.

This module lives in the CLI layer — it may import from ``infra``
and ``core``, and it renders via Rich.  No business logic resides
here; it purely collects and displays diagnostic data.
"""

from __future__ import annotations

import sys

from reposwarm.cli import exit_codes
from reposwarm.cli.console import console
from reposwarm.core.guide import AGENT_DISPLAY_NAMES
from reposwarm.core.models import Environment
from reposwarm.infra.cli_config import config_path
from reposwarm.version import __version__

_OK = "[green]OK[/green]"
_WARN = "[yellow]WARN[/yellow]"
_FAIL = "[red]FAIL[/red]"

Check = tuple[str, str, str]


# ---------------------------------------------------------------------------
# Diagnostic collectors
# ---------------------------------------------------------------------------

def _required(label: str, present: bool, version: str) -> Check:
    if present:
        return label, version or "found", _OK
    return label, "not found", _FAIL


def _optional(label: str, present: bool, value: str) -> Check:
    if present:
        return label, value or "found", _OK
    return label, "not found", _WARN


def _agent_check(env: Environment) -> Check:
    agent = env.agent_name()
    if not agent:
        return "Coding agent", "none", _WARN
    return "Coding agent", AGENT_DISPLAY_NAMES.get(agent, agent), _OK


def _aws_check(env: Environment) -> Check:
    value = env.aws_region
    if env.aws_profile:
        value = f"{value} (profile {env.aws_profile})"
    return "AWS region", value, _OK


def _config_check() -> Check:
    path = config_path()
    if path.exists():
        return "CLI config", str(path), _OK
    return "CLI config", "not configured", _WARN


def collect_checks(env: Environment) -> list[Check]:
    """Return (label, value, status) rows for *env*."""
    return [
        ("reposwarm", __version__, _OK),
        ("OS", f"{env.os}/{env.arch}", _OK),
        _required("Docker", env.has_docker, env.docker_version),
        _required("Docker Compose", env.has_compose, env.compose_version),
        _required("Node.js", env.has_node, env.node_version),
        _required("Python", env.has_python, env.python_version),
        _required("Git", env.has_git, env.git_version),
        _optional("npm", env.has_npm, ""),
        _optional("AWS CLI", env.has_aws_cli, ""),
        _aws_check(env),
        _agent_check(env),
        _config_check(),
    ]


def _status_plain(status: str) -> str:
    """Convert rich-markup status to plain text."""
    for word in ("FAIL", "WARN", "OK"):
        if word in status:
            return word
    return status


def _print_plain_doctor_table(checks: list[Check]) -> None:
    """Render doctor output without Rich."""
    print("\nreposwarm doctor", file=sys.stderr)
    print("=" * 64, file=sys.stderr)
    print(f"{'Component':<16} {'Value':<38} {'Status':<8}", file=sys.stderr)
    print("-" * 64, file=sys.stderr)
    for label, value, status in checks:
        print(f"{label:<16} {value:<38} {_status_plain(status):<8}", file=sys.stderr)
    print(file=sys.stderr)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def run_doctor(env: Environment) -> int:
    """Render diagnostic checks for *env*.

    Returns
    -------
    int
        :data:`exit_codes.SUCCESS` when every required tool is present,
        :data:`exit_codes.GENERAL_ERROR` otherwise.
    """
    checks = collect_checks(env)

    rich_available = True
    try:
        from rich.table import Table
    except ModuleNotFoundError:
        rich_available = False

    if rich_available:
        table = Table(
            title="reposwarm doctor",
            show_header=True,
            header_style="bold cyan",
            border_style="dim",
        )
        table.add_column("Component", style="bold", min_width=14)
        table.add_column("Value", min_width=20)
        table.add_column("Status", justify="center", min_width=8)

        for label, value, status in checks:
            table.add_row(label, value, status)

        console.print()
        console.print(table)
        console.print()
    else:
        _print_plain_doctor_table(checks)

    missing = env.missing_deps()
    if missing:
        console.print(f"[bold red]Missing required tools:[/bold red] {', '.join(missing)}")
        console.print("Run [bold]reposwarm new --guide-only[/bold] for install instructions.")
        return exit_codes.GENERAL_ERROR

    console.print("[bold green]All required tools found.[/bold green]")
    return exit_codes.SUCCESS
