"""Domain models for the local bootstrap.

:class:`Environment` and :class:`StepResult` are frozen value objects.
:class:`SetupResult` is the one mutable aggregate: steps are appended to
it in execution order, but each appended :class:`StepResult` is itself
immutable.
"""

from __future__ import annotations

import enum
import os
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

INSTALL_DIR_NAME = "reposwarm"


# ---------------------------------------------------------------------------
# Host environment snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Environment:
    """Immutable snapshot of the host, produced once per command."""

    os: str
    arch: str
    home_dir: str
    work_dir: str
    shell: str = ""

    # Runtimes
    has_docker: bool = False
    docker_version: str = ""
    has_compose: bool = False
    compose_version: str = ""
    has_node: bool = False
    node_version: str = ""
    has_python: bool = False
    python_version: str = ""
    python_command: str = "python3"
    """The interpreter name that answered the version probe."""
    has_go: bool = False
    go_version: str = ""
    has_git: bool = False
    git_version: str = ""

    # Coding agents
    has_claude_code: bool = False
    has_cursor: bool = False
    has_codex: bool = False
    has_aider: bool = False

    # AWS
    has_aws_cli: bool = False
    aws_region: str = "us-east-1"
    aws_profile: str = ""

    # Package managers
    has_brew: bool = False
    has_apt: bool = False
    has_pip: bool = False
    has_npm: bool = False

    def missing_deps(self) -> list[str]:
        """Return the hard requirements that are absent, in a fixed order."""
        required = (
            (self.has_docker, "docker"),
            (self.has_compose, "docker-compose"),
            (self.has_node, "node (v22+)"),
            (self.has_python, "python3 (3.11+)"),
            (self.has_git, "git"),
        )
        return [name for present, name in required if not present]

    def agent_name(self) -> str:
        """Return the preferred available coding agent, or ``""``."""
        for present, name in (
            (self.has_claude_code, "claude"),
            (self.has_codex, "codex"),
            (self.has_cursor, "cursor"),
            (self.has_aider, "aider"),
        ):
            if present:
                return name
        return ""

    def default_install_dir(self) -> Path:
        return Path(self.work_dir) / INSTALL_DIR_NAME


# ---------------------------------------------------------------------------
# Launched processes
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ProcessHandle:
    """A detached service process launched by the provisioner.

    The orchestrator does not supervise the process; the handle (or the
    pid file it points to) lets callers query or stop it later.
    """

    service: str
    pid: int
    log_path: Path
    pid_path: Path

    @classmethod
    def from_pid_file(cls, service: str, pid_path: Path) -> ProcessHandle:
        """Rebuild a handle from ``<dir>/<service>.pid``.

        Raises
        ------
        ValueError
            If the pid file does not contain an integer.
        """
        pid = int(pid_path.read_text(encoding="utf-8").strip())
        return cls(
            service=service,
            pid=pid,
            log_path=pid_path.with_suffix(".log"),
            pid_path=pid_path,
        )

    def is_running(self) -> bool:
        """Return whether the process is alive.

        Children of this process are reaped first; an exited child stays
        a zombie until then and would otherwise still answer signals.
        """
        try:
            reaped, _ = os.waitpid(self.pid, os.WNOHANG)
        except ChildProcessError:
            pass  # not our child
        else:
            return reaped == 0
        try:
            os.kill(self.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but owned by someone else.
            return True
        return True

    def terminate(self) -> bool:
        """Send SIGTERM to the process group; return whether it was signalled."""
        if not self.is_running():
            return False
        try:
            os.killpg(self.pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError):
            try:
                os.kill(self.pid, signal.SIGTERM)
            except (ProcessLookupError, PermissionError):
                return False
        return True


# ---------------------------------------------------------------------------
# Step results
# ---------------------------------------------------------------------------

class StepStatus(str, enum.Enum):
    OK = "ok"
    FAIL = "fail"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class StepResult:
    """Outcome of one orchestration step."""

    name: str
    status: StepStatus
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "status": self.status.value, "message": self.message}


@dataclass(slots=True)
class SetupResult:
    """Aggregate outcome of a local setup run.

    ``success`` is true iff no critical step failed; advisory failures
    (worker, UI, verification) never flip it.
    """

    install_dir: Path
    token: str = ""
    steps: list[StepResult] = field(default_factory=list)
    success: bool = False
    handles: dict[str, ProcessHandle] = field(default_factory=dict)
    """Processes launched during this run, keyed by service name."""

    def record(self, name: str, status: StepStatus, message: str = "") -> StepResult:
        """Append a step result, enforcing unique step names."""
        if any(step.name == name for step in self.steps):
            raise ValueError(f"step {name!r} already recorded")
        step = StepResult(name=name, status=status, message=message)
        self.steps.append(step)
        return step

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        """Return the machine-readable result schema."""
        return {
            "installDir": str(self.install_dir),
            "token": self.token,
            "steps": [step.to_dict() for step in self.steps],
            "success": self.success,
        }
