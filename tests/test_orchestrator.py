"""Tests for the local setup pipeline (core/orchestrator.py).

The orchestrator runs against the real :class:`ServiceProvisioner` with a
recording fake runner and health probe — no subprocesses, no network.

Coverage:
* Prerequisite gate leaves the filesystem untouched.
* One token per run, identical in every consumer.
* Critical vs advisory failures.
* Step order, skip handling and the success flag.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from functools import partial
from pathlib import Path

import pytest

from conftest import FakeHealth, FakeRunner, RecordingPrinter
from reposwarm.config import ServiceConfig
from reposwarm.core.models import Environment, SetupResult, StepStatus
from reposwarm.core.orchestrator import (
    STEP_ORDER,
    StepOrchestrator,
    generate_token,
)
from reposwarm.core.provisioner import ServiceProvisioner
from reposwarm.exceptions import (
    ConfigWriteError,
    HealthTimeoutError,
    PrerequisiteError,
    SetupAbortedError,
)
from reposwarm.infra.cli_config import write_local_cli_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_env(path: Path) -> dict[str, str]:
    pairs = (line.split("=", 1) for line in path.read_text(encoding="utf-8").splitlines())
    return {key: value for key, value in pairs}


class _Harness:
    def __init__(
        self,
        tmp_path: Path,
        config: ServiceConfig,
        printer: RecordingPrinter,
        *,
        runner: FakeRunner | None = None,
        health: FakeHealth | None = None,
        write_cli_config: Callable[[ServiceConfig, str], object] | None = None,
    ) -> None:
        self.install_dir = tmp_path / "stack"
        self.config_file = tmp_path / "home" / ".reposwarm" / "config.json"
        self.runner = runner or FakeRunner()
        self.health = health or FakeHealth()
        self.printer = printer
        self.orchestrator = StepOrchestrator(
            config,
            ServiceProvisioner(self.runner, self.health, printer, sleep=lambda _: None),
            self.health,
            printer,
            write_cli_config or partial(write_local_cli_config, path=self.config_file),
        )

    def run(self, env: Environment, **kwargs: object) -> SetupResult:
        return self.orchestrator.run(env, self.install_dir, **kwargs)


@pytest.fixture
def harness(tmp_path: Path, config: ServiceConfig, printer: RecordingPrinter) -> _Harness:
    return _Harness(tmp_path, config, printer)


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

class TestGenerateToken:
    def test_is_64_hex_characters(self) -> None:
        assert re.fullmatch(r"[0-9a-f]{64}", generate_token())

    def test_is_fresh_each_call(self) -> None:
        assert generate_token() != generate_token()


# ---------------------------------------------------------------------------
# Prerequisites
# ---------------------------------------------------------------------------

class TestPrerequisiteGate:
    def test_missing_tool_aborts_without_creating_directory(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        with pytest.raises(SetupAbortedError) as exc_info:
            harness.run(make_env(has_docker=False))

        result = exc_info.value.result
        assert len(result.steps) == 1
        assert result.steps[0].name == "prerequisites"
        assert result.steps[0].status is StepStatus.FAIL
        assert "docker" in result.steps[0].message
        assert not harness.install_dir.exists()
        assert harness.runner.calls == []

    def test_abort_carries_prerequisite_error(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        with pytest.raises(SetupAbortedError) as exc_info:
            harness.run(make_env(has_git=False, has_node=False))

        assert exc_info.value.step == "prerequisites"
        assert exc_info.value.result.success is False
        assert exc_info.value.hint is not None
        assert "node (v22+)" in str(exc_info.value)

    def test_missing_tools_are_reported(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        with pytest.raises(SetupAbortedError):
            harness.run(make_env(has_python=False))
        assert "Missing: python3 (3.11+)" in harness.printer.texts("error")

    def test_prerequisite_error_lists_missing(self) -> None:
        err = PrerequisiteError(["docker", "git"])
        assert err.missing == ["docker", "git"]
        assert str(err) == "missing prerequisites: docker, git"


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestEndToEnd:
    def test_all_steps_ok_in_order(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        result = harness.run(make_env())

        assert result.success is True
        assert [step.name for step in result.steps] == list(STEP_ORDER)
        assert len(result.steps) == 8
        assert all(step.status is StepStatus.OK for step in result.steps)

    def test_handles_kept_for_detached_services(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        result = harness.run(make_env())
        assert set(result.handles) == {"api", "worker", "ui"}
        assert result.handles["api"].pid_path == harness.install_dir / "api" / "api.pid"

    def test_temporal_manifest_written_and_started(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        harness.run(make_env())

        temporal_dir = harness.install_dir / "temporal"
        assert (temporal_dir / "docker-compose.yml").is_file()
        assert (("docker", "compose", "up", "-d"), temporal_dir) in harness.runner.calls

    def test_service_urls_recorded(
        self,
        harness: _Harness,
        make_env: Callable[..., Environment],
        config: ServiceConfig,
    ) -> None:
        result = harness.run(make_env())
        assert result.step("api").message == config.api_url
        assert result.step("ui").message == config.ui_url
        assert result.step("temporal").message == config.temporal_ui_url

    def test_to_dict_schema(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        payload = harness.run(make_env()).to_dict()
        assert set(payload) == {"installDir", "token", "steps", "success"}
        assert payload["steps"][0] == {"name": "prerequisites", "status": "ok", "message": ""}


class TestTokenPropagation:
    def test_same_token_everywhere(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        result = harness.run(make_env())
        token = result.token

        assert re.fullmatch(r"[0-9a-f]{64}", token)
        assert _read_env(harness.install_dir / "api" / ".env")["BEARER_TOKEN"] == token
        assert _read_env(harness.install_dir / "worker" / ".env")["REPOSWARM_API_TOKEN"] == token
        saved = json.loads(harness.config_file.read_text(encoding="utf-8"))
        assert saved["apiToken"] == token

        worker_env = next(env for svc, _, env in harness.runner.spawned if svc == "worker")
        assert worker_env is not None
        assert worker_env["REPOSWARM_API_TOKEN"] == token

    def test_token_factory_called_once(
        self,
        tmp_path: Path,
        config: ServiceConfig,
        printer: RecordingPrinter,
        make_env: Callable[..., Environment],
    ) -> None:
        calls: list[int] = []

        def factory() -> str:
            calls.append(1)
            return "ab" * 32

        h = _Harness(tmp_path, config, printer)
        h.orchestrator = StepOrchestrator(
            config,
            ServiceProvisioner(h.runner, h.health, printer, sleep=lambda _: None),
            h.health,
            printer,
            partial(write_local_cli_config, path=h.config_file),
            token_factory=factory,
        )
        result = h.run(make_env())
        assert calls == [1]
        assert result.token == "ab" * 32

    def test_secret_env_files_are_owner_only(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        harness.run(make_env())
        for service in ("api", "worker"):
            mode = (harness.install_dir / service / ".env").stat().st_mode & 0o777
            assert mode == 0o600


# ---------------------------------------------------------------------------
# Advisory failures
# ---------------------------------------------------------------------------

class TestAdvisorySteps:
    def test_worker_failure_does_not_block_ui(
        self,
        tmp_path: Path,
        config: ServiceConfig,
        printer: RecordingPrinter,
        make_env: Callable[..., Environment],
    ) -> None:
        runner = FakeRunner(fail=lambda args: "requirements.txt" in args)
        h = _Harness(tmp_path, config, printer, runner=runner)

        result = h.run(make_env())

        assert result.step("worker").status is StepStatus.FAIL
        assert result.step("ui").status is StepStatus.OK
        assert "ui" in [svc for svc, _, _ in runner.spawned]
        assert result.success is True
        assert any("Worker setup failed" in text for text in printer.texts("warning"))

    def test_ui_health_timeout_is_advisory(
        self,
        tmp_path: Path,
        config: ServiceConfig,
        printer: RecordingPrinter,
        make_env: Callable[..., Environment],
    ) -> None:
        h = _Harness(tmp_path, config, printer, health=FakeHealth(down=[config.ui_url]))

        result = h.run(make_env())

        assert result.step("ui").status is StepStatus.FAIL
        assert result.step("cli-config").status is StepStatus.OK
        assert result.step("verify").status is StepStatus.FAIL
        assert result.success is True

    def test_verify_failure_keeps_success(
        self,
        harness: _Harness,
        make_env: Callable[..., Environment],
        config: ServiceConfig,
    ) -> None:
        def check(url: str) -> tuple[bool, str]:
            return (False, "status 502") if url == config.api_health_url else (True, "status 200")

        harness.health.check = check  # type: ignore[method-assign]
        result = harness.run(make_env())

        verify = result.step("verify")
        assert verify.status is StepStatus.FAIL
        assert "API: status 502" in verify.message
        assert result.success is True


# ---------------------------------------------------------------------------
# Critical failures
# ---------------------------------------------------------------------------

class TestCriticalSteps:
    def test_api_health_timeout_aborts_before_worker_and_ui(
        self,
        tmp_path: Path,
        config: ServiceConfig,
        printer: RecordingPrinter,
        make_env: Callable[..., Environment],
    ) -> None:
        h = _Harness(tmp_path, config, printer, health=FakeHealth(down=[config.api_health_url]))

        with pytest.raises(SetupAbortedError) as exc_info:
            h.run(make_env())

        result = exc_info.value.result
        assert exc_info.value.step == "api"
        assert isinstance(exc_info.value.__cause__, HealthTimeoutError)
        assert [s.name for s in result.steps] == ["prerequisites", "directories", "temporal", "api"]
        assert result.steps[-1].status is StepStatus.FAIL
        assert [svc for svc, _, _ in h.runner.spawned] == ["api"]
        assert not (h.install_dir / "worker").exists()
        assert not (h.install_dir / "ui").exists()

    def test_temporal_failure_aborts(
        self,
        tmp_path: Path,
        config: ServiceConfig,
        printer: RecordingPrinter,
        make_env: Callable[..., Environment],
    ) -> None:
        runner = FakeRunner(fail=lambda args: args[:3] == ("docker", "compose", "up"))
        h = _Harness(tmp_path, config, printer, runner=runner)

        with pytest.raises(SetupAbortedError) as exc_info:
            h.run(make_env())

        assert exc_info.value.step == "temporal"
        assert exc_info.value.result.step("api") is None

    def test_directory_failure_aborts(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        harness.install_dir.write_text("not a directory", encoding="utf-8")

        with pytest.raises(SetupAbortedError) as exc_info:
            harness.run(make_env())

        assert exc_info.value.step == "directories"
        assert [s.name for s in exc_info.value.result.steps] == ["prerequisites", "directories"]

    def test_cli_config_failure_aborts(
        self,
        tmp_path: Path,
        config: ServiceConfig,
        printer: RecordingPrinter,
        make_env: Callable[..., Environment],
    ) -> None:
        def broken(_config: ServiceConfig, _token: str) -> None:
            raise ConfigWriteError("disk full")

        h = _Harness(tmp_path, config, printer, write_cli_config=broken)

        with pytest.raises(SetupAbortedError) as exc_info:
            h.run(make_env())

        result = exc_info.value.result
        assert exc_info.value.step == "cli-config"
        assert len(result.steps) == 7
        assert result.step("verify") is None


# ---------------------------------------------------------------------------
# Re-runs and skips
# ---------------------------------------------------------------------------

class TestRerun:
    def test_existing_checkouts_are_not_fetched(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        for service in ("api", "worker", "ui"):
            (harness.install_dir / service).mkdir(parents=True)

        result = harness.run(make_env())

        assert result.success is True
        assert not any(command[0] == "git" for command in harness.runner.commands())

    def test_rerun_spawns_again(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        harness.run(make_env())
        harness.run(make_env())
        spawned = [svc for svc, _, _ in harness.runner.spawned]
        assert spawned.count("api") == 2


class TestSkip:
    def test_skipped_services_recorded_as_skip(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        result = harness.run(make_env(), skip={"worker", "ui"})

        assert result.step("worker").status is StepStatus.SKIP
        assert result.step("ui").status is StepStatus.SKIP
        assert result.success is True
        assert [s.name for s in result.steps] == list(STEP_ORDER)
        assert "UI: skipped" in result.step("verify").message

    def test_cannot_skip_critical_service(
        self, harness: _Harness, make_env: Callable[..., Environment],
    ) -> None:
        with pytest.raises(ValueError, match="cannot skip api"):
            harness.run(make_env(), skip={"api"})
