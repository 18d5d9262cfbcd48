"""Shared pytest fixtures and configuration for the reposwarm test suite.

Guidelines
----------
* No internet access in any test.
* No real subprocesses: commands go through a recording fake runner.
* Filesystem writes only under ``tmp_path``; ``HOME`` is redirected so the
  real ``~/.reposwarm`` is never touched.
* Tests must not depend on which tools the host has installed.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from reposwarm.config import ServiceConfig
from reposwarm.core.models import Environment, ProcessHandle
from reposwarm.exceptions import CommandFailedError, HealthTimeoutError


# ---------------------------------------------------------------------------
# Isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("REPOSWARM_") or key.startswith("AWS_"):
            monkeypatch.delenv(key)
    return home


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class RecordingPrinter:
    """Printer that keeps every message as ``(level, text)``."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def section(self, title: str) -> None:
        self.messages.append(("section", title))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def line(self, text: str = "") -> None:
        self.messages.append(("line", text))

    def texts(self, level: str) -> list[str]:
        return [text for lvl, text in self.messages if lvl == level]


class FakeRunner:
    """CommandRunner double.

    ``git clone <url> <name>`` creates the target directory so later
    stages can write into it.  Any command for which *fail* returns true
    raises :class:`CommandFailedError`.
    """

    def __init__(self, fail: Callable[[tuple[str, ...]], bool] | None = None) -> None:
        self.calls: list[tuple[tuple[str, ...], Path]] = []
        self.spawned: list[tuple[str, tuple[str, ...], Mapping[str, str] | None]] = []
        self._fail = fail or (lambda args: False)

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> str:
        command = tuple(args)
        self.calls.append((command, cwd))
        if self._fail(command):
            raise CommandFailedError(command, returncode=1, output="boom")
        if command[:2] == ("git", "clone"):
            (cwd / command[3]).mkdir(parents=True)
        return ""

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
        command = tuple(args)
        self.spawned.append((service, command, env))
        if self._fail(command):
            raise CommandFailedError(command, returncode=None, output="no such file")
        pid_path.write_text(str(os.getpid()), encoding="utf-8")
        # The test process itself stands in for a live service.
        return ProcessHandle(service=service, pid=os.getpid(), log_path=log_path, pid_path=pid_path)

    def commands(self) -> list[tuple[str, ...]]:
        return [command for command, _ in self.calls]


class FakeHealth:
    """HealthProbe double; URLs in *down* never become healthy."""

    def __init__(self, down: Iterable[str] = ()) -> None:
        self.down = set(down)
        self.waited: list[tuple[str, float]] = []
        self.checked: list[str] = []

    def wait_for_http(self, url: str, timeout: float) -> None:
        self.waited.append((url, timeout))
        if url in self.down:
            raise HealthTimeoutError(url, timeout)

    def check(self, url: str) -> tuple[bool, str]:
        self.checked.append(url)
        if url in self.down:
            return False, "connection refused"
        return True, "status 200"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_env(tmp_path: Path) -> Callable[..., Environment]:
    """Factory for an :class:`Environment` with every prerequisite present."""

    def _make(**overrides: Any) -> Environment:
        values: dict[str, Any] = {
            "os": "linux",
            "arch": "x86_64",
            "home_dir": str(tmp_path / "home"),
            "work_dir": str(tmp_path),
            "has_docker": True,
            "docker_version": "Docker version 27.0.3",
            "has_compose": True,
            "compose_version": "Docker Compose version v2.29.1",
            "has_node": True,
            "node_version": "v22.4.0",
            "has_python": True,
            "python_version": "Python 3.12.4",
            "has_git": True,
            "git_version": "git version 2.45.2",
            "has_apt": True,
            "has_npm": True,
        }
        values.update(overrides)
        return Environment(**values)

    return _make


@pytest.fixture
def config() -> ServiceConfig:
    return ServiceConfig()


@pytest.fixture
def printer() -> RecordingPrinter:
    return RecordingPrinter()
