"""Infrastructure: subprocess execution for provisioning.

:class:`SubprocessRunner` satisfies
:class:`~reposwarm.core.protocols.CommandRunner` structurally.  Every
``OSError`` / ``CalledProcessError`` is caught here and re-raised as
:class:`~reposwarm.exceptions.CommandFailedError`.

Rules
-----
* Blocking commands capture stdout and stderr together.
* Spawned services run in their own session so they survive the CLI
  and can be stopped as a process group.
* No user-facing output — callers handle that.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from reposwarm.core.models import ProcessHandle
from reposwarm.exceptions import CommandFailedError

logger = logging.getLogger(__name__)


def _merged_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    return {**os.environ, **env}


class SubprocessRunner:
    """Concrete :class:`CommandRunner` backed by :mod:`subprocess`."""

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Run *args* to completion and return combined stdout/stderr.

        Raises
        ------
        CommandFailedError
            When the executable is missing or exits non-zero.
        """
        command = tuple(args)
        logger.debug("Running %s in %s", " ".join(command), cwd)
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                env=_merged_env(env),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise CommandFailedError(command, returncode=None, output=str(exc)) from exc

        if completed.returncode != 0:
            raise CommandFailedError(
                command,
                returncode=completed.returncode,
                output=completed.stdout or "",
            )
        return completed.stdout or ""

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
        """Start *args* in the background and persist its pid.

        The log file is truncated on every launch.  The child inherits the
        file descriptor, so the parent's copy is closed straight away.

        Raises
        ------
        CommandFailedError
            When the log file cannot be opened or the process cannot start.
        """
        command = tuple(args)
        logger.debug("Spawning %s in %s (log: %s)", " ".join(command), cwd, log_path)
        try:
            with log_path.open("wb") as log_file:
                process = subprocess.Popen(
                    command,
                    cwd=cwd,
                    env=_merged_env(env),
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as exc:
            raise CommandFailedError(command, returncode=None, output=str(exc)) from exc

        try:
            pid_path.write_text(f"{process.pid}", encoding="utf-8")
        except OSError as exc:
            # The process is running; losing the pid file only affects `stop`.
            logger.warning("Could not write pid file %s: %s", pid_path, exc)

        return ProcessHandle(
            service=service,
            pid=process.pid,
            log_path=log_path,
            pid_path=pid_path,
        )

    def run_interactive(self, args: Sequence[str], *, cwd: Path) -> None:
        """Run *args* attached to the current terminal.

        Raises
        ------
        CommandFailedError
            When the executable is missing or exits non-zero.
        """
        command = tuple(args)
        logger.debug("Running interactively %s in %s", command[0], cwd)
        try:
            completed = subprocess.run(command, cwd=cwd, check=False)
        except OSError as exc:
            raise CommandFailedError(command, returncode=None, output=str(exc)) from exc
        if completed.returncode != 0:
            raise CommandFailedError(command, returncode=completed.returncode)
