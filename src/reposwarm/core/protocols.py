"""Protocols (interfaces) consumed by the core layer.

These define the contracts that infrastructure adapters and the CLI
renderer must satisfy.  The provisioner and orchestrator depend ONLY on
these protocols, so tests can drive a full setup run without touching
the host.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from reposwarm.core.models import ProcessHandle


class Printer(Protocol):
    """Narrow output capability injected into the orchestrator."""

    def section(self, title: str) -> None: ...  # pragma: no cover

    def info(self, message: str) -> None: ...  # pragma: no cover

    def success(self, message: str) -> None: ...  # pragma: no cover

    def warning(self, message: str) -> None: ...  # pragma: no cover

    def error(self, message: str) -> None: ...  # pragma: no cover

    def line(self, text: str = "") -> None: ...  # pragma: no cover


class CommandRunner(Protocol):
    """Contract for running external commands.

    Implementations must map all backend exceptions to
    :class:`~reposwarm.exceptions.CommandFailedError`.
    """

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Run *args* to completion inside *cwd* and return combined output.

        Raises
        ------
        CommandFailedError
            When the command cannot start or exits non-zero.
        """
        ...  # pragma: no cover

    def spawn(
        self,
        service: str,
        args: Sequence[str],
        *,
        cwd: Path,
        log_path: Path,
        pid_path: Path,
        env: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        """Start *args* detached, logging to *log_path*, pid to *pid_path*.

        Raises
        ------
        CommandFailedError
            When the process cannot be started.
        """
        ...  # pragma: no cover


class HealthProbe(Protocol):
    """Contract for HTTP readiness checks."""

    def wait_for_http(self, url: str, timeout: float) -> None:
        """Block until *url* answers healthy or *timeout* seconds elapse.

        Raises
        ------
        HealthTimeoutError
            When the deadline passes without a healthy response.
        """
        ...  # pragma: no cover

    def check(self, url: str) -> tuple[bool, str]:
        """Probe *url* once; return ``(healthy, detail)``."""
        ...  # pragma: no cover
