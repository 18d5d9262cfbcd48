"""Regression tests for optional CLI UI dependencies (rich/questionary).

These tests verify bootstrap commands are resilient when optional UI
packages are missing, and interactive flows fail cleanly only when a
prompt is actually needed.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest

from reposwarm.cli import exit_codes
from reposwarm.cli.app import main
from reposwarm.core.models import Environment, SetupResult
from reposwarm.exceptions import EnvironmentError


def _hide_rich(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "rich", None)
    monkeypatch.setitem(sys.modules, "rich.console", None)
    monkeypatch.setitem(sys.modules, "rich.table", None)
    monkeypatch.setitem(sys.modules, "rich.markup", None)
    monkeypatch.setitem(sys.modules, "rich.logging", None)


def _hide_questionary(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "questionary", None)


def test_help_works_without_rich_or_questionary(monkeypatch: pytest.MonkeyPatch) -> None:
    _hide_rich(monkeypatch)
    _hide_questionary(monkeypatch)

    with pytest.raises(SystemExit) as exc_info:
        main(["--help"])
    assert exc_info.value.code == 0


def test_version_works_without_rich_or_questionary(monkeypatch: pytest.MonkeyPatch) -> None:
    _hide_rich(monkeypatch)
    _hide_questionary(monkeypatch)

    with pytest.raises(SystemExit) as exc_info:
        main(["--version"])
    assert exc_info.value.code == 0


def test_doctor_works_without_rich(
    monkeypatch: pytest.MonkeyPatch,
    make_env: Callable[..., Environment],
    capsys: pytest.CaptureFixture[str],
) -> None:
    _hide_rich(monkeypatch)

    with patch("reposwarm.infra.environment_probe.detect", return_value=make_env()):
        code = main(["doctor"])

    assert code == exit_codes.SUCCESS
    err = capsys.readouterr().err
    assert "reposwarm doctor" in err
    assert "[green]" not in err


def test_local_json_works_without_rich_or_questionary(
    monkeypatch: pytest.MonkeyPatch,
    make_env: Callable[..., Environment],
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _hide_rich(monkeypatch)
    _hide_questionary(monkeypatch)

    with patch("reposwarm.infra.environment_probe.detect", return_value=make_env()):
        with patch("reposwarm.core.orchestrator.StepOrchestrator.run") as run:
            run.return_value = SetupResult(install_dir=tmp_path, success=True)
            code = main(["new", "--local", "--json", "--dir", str(tmp_path)])

    assert code == exit_codes.SUCCESS
    assert json.loads(capsys.readouterr().out)["success"] is True


def test_confirmation_errors_cleanly_when_questionary_missing(
    monkeypatch: pytest.MonkeyPatch,
    make_env: Callable[..., Environment],
    tmp_path: Path,
) -> None:
    _hide_questionary(monkeypatch)

    with patch("reposwarm.infra.environment_probe.detect", return_value=make_env()):
        with pytest.raises(EnvironmentError, match="questionary is not installed"):
            main(["new", "--local", "--dir", str(tmp_path)])
