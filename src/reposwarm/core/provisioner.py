"""Core provisioner — brings one service up from a :class:`ServiceRecipe`.

Sequence
--------
1. Acquire source (clone unless the directory already exists).
2. Install dependencies.
3. Build.
4. Write the env file (and any extra files such as the compose manifest).
5. Launch — detached with log and pid files, or a blocking command.
6. Await health.

Each stage raises its own :class:`~reposwarm.exceptions.ProvisioningError`
subclass.  Whether a failure aborts the whole setup is decided by the
orchestrator, not here.

Only the fetch is idempotent: install, env-file write and launch always
re-run, so provisioning an already-running stack starts a second copy of
each detached service.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from pathlib import Path

from reposwarm.core.models import ProcessHandle
from reposwarm.core.protocols import CommandRunner, HealthProbe, Printer
from reposwarm.core.services import ServiceRecipe, render_env_file
from reposwarm.exceptions import (
    BuildError,
    CommandFailedError,
    EnvFileError,
    FetchError,
    HealthTimeoutError,
    InstallError,
    LaunchError,
)

logger = logging.getLogger(__name__)

SECRET_FILE_MODE = 0o600
PLAIN_FILE_MODE = 0o644

# How long a service without a health endpoint must survive after launch.
LAUNCH_GRACE_PERIOD: float = 2.0


class ServiceProvisioner:
    """Executes :class:`ServiceRecipe` objects against injected collaborators.

    Parameters
    ----------
    runner:
        Any object satisfying the :class:`CommandRunner` protocol.
    health:
        Any object satisfying the :class:`HealthProbe` protocol.
    printer:
        Progress output.
    """

    def __init__(
        self,
        runner: CommandRunner,
        health: HealthProbe,
        printer: Printer,
        *,
        grace_period: float = LAUNCH_GRACE_PERIOD,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._runner = runner
        self._health = health
        self._printer = printer
        self._grace_period = grace_period
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def provision(self, recipe: ServiceRecipe) -> ProcessHandle | None:
        """Run every provisioning stage for *recipe*.

        Returns
        -------
        ProcessHandle | None
            The detached process, or ``None`` for blocking launches.

        Raises
        ------
        ProvisioningError
            The first stage that failed, tagged with the service name.
        """
        self._acquire(recipe)
        self._run_all(recipe, recipe.install, InstallError, "Installing dependencies...")
        self._run_all(recipe, recipe.build, BuildError, "Building...")
        self._write_files(recipe)
        handle = self._launch(recipe)
        self._await_health(recipe, handle)
        return handle

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _acquire(self, recipe: ServiceRecipe) -> None:
        directory = recipe.directory
        if recipe.repo_url is None:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FetchError(recipe.name, f"creating {directory}: {exc}") from exc
            return

        if directory.exists():
            self._printer.info(f"{recipe.title} directory exists, skipping clone")
            return

        self._printer.info(f"Cloning {recipe.title}...")
        try:
            self._runner.run(
                ("git", "clone", recipe.repo_url, directory.name),
                cwd=directory.parent,
            )
        except CommandFailedError as exc:
            raise FetchError(
                recipe.name,
                f"git clone failed: {exc}",
                hint=f"Check that {recipe.repo_url} is reachable.",
            ) from exc

    def _run_all(
        self,
        recipe: ServiceRecipe,
        commands: tuple[tuple[str, ...], ...],
        error_cls: type[InstallError] | type[BuildError],
        banner: str,
    ) -> None:
        if not commands:
            return
        self._printer.info(banner)
        for command in commands:
            try:
                self._runner.run(command, cwd=recipe.directory)
            except CommandFailedError as exc:
                raise error_cls(recipe.name, str(exc)) from exc

    def _write_files(self, recipe: ServiceRecipe) -> None:
        for name, content in recipe.files.items():
            _write_file(recipe, recipe.directory / name, content, PLAIN_FILE_MODE)
            self._printer.info(f"Wrote {name}")

        if recipe.env_file is None:
            return
        mode = SECRET_FILE_MODE if recipe.secret_env else PLAIN_FILE_MODE
        _write_file(recipe, recipe.directory / recipe.env_file, render_env_file(recipe.env), mode)

    def _launch(self, recipe: ServiceRecipe) -> ProcessHandle | None:
        self._printer.info(f"Starting {recipe.title}...")
        env = recipe.env if recipe.launch_env else None
        try:
            if not recipe.detached:
                self._runner.run(recipe.start, cwd=recipe.directory, env=env)
                return None
            handle = self._runner.spawn(
                recipe.name,
                recipe.start,
                cwd=recipe.directory,
                log_path=recipe.log_path,
                pid_path=recipe.pid_path,
                env=env,
            )
        except CommandFailedError as exc:
            raise LaunchError(recipe.name, f"starting {recipe.name}: {exc}") from exc
        logger.debug("%s running as pid %d", recipe.name, handle.pid)
        return handle

    def _await_health(self, recipe: ServiceRecipe, handle: ProcessHandle | None) -> None:
        if recipe.health_url is None:
            if handle is not None:
                self._sleep(self._grace_period)
                if not handle.is_running():
                    raise LaunchError(
                        recipe.name,
                        f"{recipe.name} exited right after starting",
                        hint=f"Check {handle.log_path}",
                    )
            self._printer.success(f"{recipe.title} started")
            return

        self._printer.info(
            f"Waiting for {recipe.title} to be ready "
            f"(up to {recipe.health_timeout:.0f}s)...",
        )
        try:
            self._health.wait_for_http(recipe.health_url, recipe.health_timeout)
        except HealthTimeoutError as exc:
            raise HealthTimeoutError(
                exc.url,
                exc.elapsed,
                service=recipe.name,
                detail=self._diagnostics(recipe),
            ) from exc
        self._printer.success(f"{recipe.title} is ready")

    def _diagnostics(self, recipe: ServiceRecipe) -> str:
        if not recipe.diagnostics:
            if recipe.detached:
                return f"See {recipe.log_path}"
            return ""
        try:
            output = self._runner.run(recipe.diagnostics, cwd=recipe.directory)
        except CommandFailedError as exc:
            return f"(status unavailable: {exc})"
        return f"Container status:\n{output}"


def _write_file(recipe: ServiceRecipe, path: Path, content: str, mode: int) -> None:
    """Write *content* to *path* with *mode*, also tightening existing files."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(path, mode)
    except OSError as exc:
        raise EnvFileError(recipe.name, f"writing {path.name}: {exc}") from exc
    logger.debug("Wrote %s (mode %o)", path, mode)
