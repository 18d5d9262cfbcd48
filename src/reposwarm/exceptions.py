"""Custom exception hierarchy for reposwarm.

All exceptions that cross layer boundaries must inherit from
:class:`ReposwarmError`.  Raw ``OSError`` / ``subprocess`` / ``httpx``
exceptions must never propagate beyond the infrastructure layer — they
are caught there and re-raised as a typed subclass defined here.

Hierarchy
---------
ReposwarmError
├── EnvironmentError
├── PrerequisiteError
├── CommandFailedError
├── ProvisioningError
│   ├── FetchError
│   ├── InstallError
│   ├── BuildError
│   ├── EnvFileError
│   ├── LaunchError
│   └── HealthTimeoutError
├── ConfigError
│   └── ConfigWriteError
├── GuideWriteError
└── SetupAbortedError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reposwarm.core.models import SetupResult


class ReposwarmError(Exception):
    """Base exception for all reposwarm errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the CLI error boundary can render a clean message
    without leaking internal stack traces.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""


# --- Environment / tooling -------------------------------------------------

class EnvironmentError(ReposwarmError):
    """Raised when a required Python dependency is not available."""


class PrerequisiteError(ReposwarmError):
    """Raised when required host tools (docker, node, ...) are missing."""

    def __init__(self, missing: list[str], *, hint: str | None = None) -> None:
        super().__init__(
            f"missing prerequisites: {', '.join(missing)}",
            hint=hint or "Install them first, then re-run `reposwarm new --local`.",
        )
        self.missing: list[str] = list(missing)


class CommandFailedError(ReposwarmError):
    """Raised when an external command exits non-zero or cannot start."""

    def __init__(
        self,
        args: tuple[str, ...],
        *,
        returncode: int | None,
        output: str = "",
    ) -> None:
        command = " ".join(args)
        if returncode is None:
            message = f"{command} could not be started"
        else:
            message = f"{command} failed with exit code {returncode}"
        if output.strip():
            message = f"{message}\n{output.rstrip()}"
        super().__init__(message)
        self.command: tuple[str, ...] = args
        self.returncode: int | None = returncode
        self.output: str = output


# --- Provisioning ----------------------------------------------------------

class ProvisioningError(ReposwarmError):
    """Base class for failures while provisioning a single service."""

    def __init__(
        self,
        service: str,
        message: str,
        *,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.service: str = service


class FetchError(ProvisioningError):
    """Raised when the service source cannot be cloned."""


class InstallError(ProvisioningError):
    """Raised when the dependency-install step fails."""


class BuildError(ProvisioningError):
    """Raised when the build step fails."""


class EnvFileError(ProvisioningError):
    """Raised when the service env file or manifest cannot be written."""


class LaunchError(ProvisioningError):
    """Raised when the service process cannot be started."""


class HealthTimeoutError(ProvisioningError):
    """Raised when a health endpoint does not answer before the deadline."""

    def __init__(
        self,
        url: str,
        elapsed: float,
        *,
        service: str = "",
        detail: str = "",
    ) -> None:
        message = f"timeout waiting for {url} after {elapsed:.1f}s"
        if detail:
            message = f"{message}\n{detail.rstrip()}"
        super().__init__(service, message)
        self.url: str = url
        self.elapsed: float = elapsed


# --- Configuration ---------------------------------------------------------

class ConfigError(ReposwarmError):
    """Raised when the CLI configuration file cannot be read or parsed."""


class ConfigWriteError(ConfigError):
    """Raised when the CLI configuration file cannot be written."""


# --- Guides ----------------------------------------------------------------

class GuideWriteError(ReposwarmError):
    """Raised when the installation guides cannot be written."""


# --- Orchestration ---------------------------------------------------------

class SetupAbortedError(ReposwarmError):
    """Raised when a critical setup step fails.

    The partial :class:`~reposwarm.core.models.SetupResult` is attached so
    callers can still render every step recorded before the abort.
    """

    def __init__(
        self,
        step: str,
        cause: Exception,
        result: SetupResult,
    ) -> None:
        hint = cause.hint if isinstance(cause, ReposwarmError) else None
        super().__init__(f"{step}: {cause}", hint=hint)
        self.step: str = step
        self.result: SetupResult = result
