"""Core orchestrator — the ``reposwarm new --local`` pipeline.

Runs a fixed sequence of named steps, one at a time:

=============  ===========  ==========================================
step           criticality  on failure
=============  ===========  ==========================================
prerequisites  critical     abort before touching the filesystem
directories    critical     abort
temporal       critical     abort
api            critical     abort
worker         advisory     record ``fail``, warn, continue
ui             advisory     record ``fail``, warn, continue
cli-config     critical     abort
verify         advisory     recorded only
=============  ===========  ==========================================

A critical failure raises :class:`~reposwarm.exceptions.SetupAbortedError`
carrying the partial :class:`~reposwarm.core.models.SetupResult`.

Limitations
-----------
* Two concurrent runs against the same install directory are unsafe;
  there is no cross-process lock.
* Re-running against a live stack spawns duplicate processes (see
  :mod:`reposwarm.core.provisioner`).
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Collection
from pathlib import Path
from typing import NoReturn

from reposwarm.config import ServiceConfig
from reposwarm.core.models import Environment, SetupResult, StepStatus
from reposwarm.core.protocols import HealthProbe, Printer
from reposwarm.core.provisioner import ServiceProvisioner
from reposwarm.core.services import API, TEMPORAL, UI, WORKER, build_recipes
from reposwarm.exceptions import PrerequisiteError, ReposwarmError, SetupAbortedError

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32

STEP_PREREQUISITES = "prerequisites"
STEP_DIRECTORIES = "directories"
STEP_CLI_CONFIG = "cli-config"
STEP_VERIFY = "verify"

STEP_ORDER: tuple[str, ...] = (
    STEP_PREREQUISITES,
    STEP_DIRECTORIES,
    TEMPORAL,
    API,
    WORKER,
    UI,
    STEP_CLI_CONFIG,
    STEP_VERIFY,
)
CRITICAL_STEPS: frozenset[str] = frozenset(
    {STEP_PREREQUISITES, STEP_DIRECTORIES, TEMPORAL, API, STEP_CLI_CONFIG},
)
OPTIONAL_SERVICES: frozenset[str] = frozenset({WORKER, UI})

_ADVISORY_IMPACT = {
    WORKER: "investigations won't run, but API/UI will work",
    UI: "the CLI still works",
}


def generate_token() -> str:
    """Return a fresh bearer token: 32 random bytes as 64 hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


class StepOrchestrator:
    """Drives the local setup pipeline.

    Parameters
    ----------
    config:
        Ports, repositories and identifiers for this run.
    provisioner:
        Executes one service recipe.
    health:
        Used for the final verification pass.
    printer:
        Progress output.
    write_cli_config:
        Callable persisting the CLI's own config (``config``, ``token``).
    token_factory:
        Produces the run's bearer token; called exactly once per run.
    """

    def __init__(
        self,
        config: ServiceConfig,
        provisioner: ServiceProvisioner,
        health: HealthProbe,
        printer: Printer,
        write_cli_config: Callable[[ServiceConfig, str], object],
        *,
        token_factory: Callable[[], str] = generate_token,
    ) -> None:
        self._config = config
        self._provisioner = provisioner
        self._health = health
        self._printer = printer
        self._write_cli_config = write_cli_config
        self._token_factory = token_factory

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        environment: Environment,
        install_dir: Path,
        *,
        skip: Collection[str] = (),
    ) -> SetupResult:
        """Provision the whole local stack into *install_dir*.

        Parameters
        ----------
        environment:
            Host snapshot used for the prerequisite gate.
        install_dir:
            Root directory for every service checkout.
        skip:
            Optional services (``worker``, ``ui``) to leave out; they are
            recorded with status ``skip``.

        Raises
        ------
        SetupAbortedError
            When a critical step fails.  ``exc.result`` holds every step
            recorded up to and including the failed one.
        ValueError
            When *skip* names a service that is not optional.
        """
        unknown = set(skip) - OPTIONAL_SERVICES
        if unknown:
            raise ValueError(f"cannot skip {', '.join(sorted(unknown))}")

        result = SetupResult(install_dir=install_dir)

        self._printer.section("Checking prerequisites")
        missing = environment.missing_deps()
        if missing:
            for dep in missing:
                self._printer.error(f"Missing: {dep}")
            result.record(STEP_PREREQUISITES, StepStatus.FAIL, "missing: " + ", ".join(missing))
            raise SetupAbortedError(STEP_PREREQUISITES, PrerequisiteError(missing), result)
        self._printer.success("All prerequisites found")
        result.record(STEP_PREREQUISITES, StepStatus.OK)

        result.token = self._token_factory()
        recipes = build_recipes(
            self._config,
            install_dir,
            result.token,
            python=environment.python_command,
        )

        self._printer.section("Creating directory structure")
        try:
            install_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            self._abort(result, STEP_DIRECTORIES, exc)
        self._printer.success(f"Install directory: {install_dir}")
        result.record(STEP_DIRECTORIES, StepStatus.OK, str(install_dir))

        for name in (TEMPORAL, API, WORKER, UI):
            recipe = recipes[name]
            self._printer.section(f"Setting up {recipe.title}")
            if name in skip:
                self._printer.info(f"Skipping {recipe.title}")
                result.record(name, StepStatus.SKIP, "skipped on request")
                continue
            try:
                handle = self._provisioner.provision(recipe)
            except ReposwarmError as exc:
                if name in CRITICAL_STEPS:
                    self._abort(result, name, exc)
                self._printer.warning(
                    f"{recipe.title} setup failed: {exc} ({_ADVISORY_IMPACT[name]})",
                )
                result.record(name, StepStatus.FAIL, str(exc))
                continue
            if handle is not None:
                result.handles[name] = handle
            result.record(name, StepStatus.OK, self._service_url(name))

        self._printer.section("Configuring CLI")
        try:
            self._write_cli_config(self._config, result.token)
        except ReposwarmError as exc:
            self._abort(result, STEP_CLI_CONFIG, exc)
        self._printer.success("CLI configured for local API")
        result.record(STEP_CLI_CONFIG, StepStatus.OK)

        self._printer.section("Verifying services")
        self._verify(result, skip)

        result.success = not any(
            step.status is StepStatus.FAIL and step.name in CRITICAL_STEPS
            for step in result.steps
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _service_url(self, name: str) -> str:
        return {
            TEMPORAL: self._config.temporal_ui_url,
            API: self._config.api_url,
            UI: self._config.ui_url,
        }.get(name, "")

    def _abort(self, result: SetupResult, step: str, exc: Exception) -> NoReturn:
        """Record *step* as failed and raise :class:`SetupAbortedError`."""
        self._printer.error(f"{step} failed: {exc}")
        result.record(step, StepStatus.FAIL, str(exc))
        logger.debug("Aborting setup at %s", step, exc_info=exc)
        raise SetupAbortedError(step, exc, result) from exc

    def _verify(self, result: SetupResult, skip: Collection[str]) -> None:
        checks = [
            ("Temporal", TEMPORAL, self._config.temporal_health_url),
            ("API", API, self._config.api_health_url),
            ("UI", UI, self._config.ui_url),
        ]
        all_ok = True
        messages: list[str] = []
        for label, name, url in checks:
            if name in skip:
                messages.append(f"{label}: skipped")
                continue
            healthy, detail = self._health.check(url)
            if healthy:
                self._printer.success(f"{label}: healthy")
                messages.append(f"{label}: ok")
            else:
                self._printer.warning(f"{label}: {detail}")
                messages.append(f"{label}: {detail}")
                all_ok = False

        worker = result.handles.get(WORKER)
        if worker is not None and not worker.is_running():
            self._printer.warning(f"Worker: process {worker.pid} is not running")
            messages.append("Worker: not running")
            all_ok = False

        status = StepStatus.OK if all_ok else StepStatus.FAIL
        result.record(STEP_VERIFY, status, "; ".join(messages))
