"""Infrastructure: host environment detection.

Produces the immutable :class:`~reposwarm.core.models.Environment`
snapshot consumed by ``doctor``, ``new`` and the local setup.

Rules
-----
* Tools are located with :func:`shutil.which` before anything is run.
* Version checks run ``tool --version`` style commands with a short
  timeout; a missing, failing or hanging tool is recorded as absent.
* Never raises and never writes to disk.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

from reposwarm.core.models import Environment

logger = logging.getLogger(__name__)

VERSION_TIMEOUT: float = 5.0
DEFAULT_AWS_REGION = "us-east-1"


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def detect() -> Environment:
    """Scan the host and return an :class:`Environment` snapshot."""
    docker_version = _command_version(("docker", "--version"))
    compose_version = _command_version(("docker", "compose", "version"))
    node_version = _command_version(("node", "--version"))
    python_command, python_version = _first_version(
        (("python3", "--version"), ("python", "--version")),
    )
    go_version = _command_version(("go", "version"))
    git_version = _command_version(("git", "--version"))
    aws_version = _command_version(("aws", "--version"))

    return Environment(
        os=platform.system().lower(),
        arch=platform.machine().lower(),
        home_dir=str(Path.home()),
        work_dir=os.getcwd(),
        shell=os.environ.get("SHELL", ""),
        has_docker=docker_version is not None,
        docker_version=docker_version or "",
        has_compose=compose_version is not None,
        compose_version=compose_version or "",
        has_node=node_version is not None,
        node_version=node_version or "",
        has_python=python_version is not None,
        python_version=python_version or "",
        python_command=python_command or "python3",
        has_go=go_version is not None,
        go_version=go_version or "",
        has_git=git_version is not None,
        git_version=git_version or "",
        has_claude_code=_exists("claude"),
        has_cursor=_exists("cursor"),
        has_codex=_exists("codex"),
        has_aider=_exists("aider"),
        has_aws_cli=aws_version is not None,
        aws_region=_first_non_empty(
            os.environ.get("AWS_REGION", ""),
            os.environ.get("AWS_DEFAULT_REGION", ""),
            DEFAULT_AWS_REGION,
        ),
        aws_profile=os.environ.get("AWS_PROFILE", ""),
        has_brew=_exists("brew"),
        has_apt=_exists("apt-get"),
        has_pip=_exists("pip3") or _exists("pip"),
        has_npm=_exists("npm"),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _exists(name: str) -> bool:
    return shutil.which(name) is not None


def _command_version(args: Sequence[str]) -> str | None:
    """Return the trimmed version output of *args*, or ``None``."""
    if not _exists(args[0]):
        return None
    try:
        completed = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            timeout=VERSION_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Version probe %s failed: %s", " ".join(args), exc)
        return None
    if completed.returncode != 0:
        return None
    # Some tools (old pythons) print their version on stderr.
    output = (completed.stdout or completed.stderr or "").strip()
    return output.splitlines()[0] if output else ""


def _first_version(
    candidates: Sequence[Sequence[str]],
) -> tuple[str | None, str | None]:
    """Return ``(command, version)`` for the first candidate that answers."""
    for args in candidates:
        version = _command_version(args)
        if version is not None:
            return args[0], version
    return None, None


def _first_non_empty(*values: str) -> str:
    return next((value for value in values if value), "")
