"""Per-service provisioning recipes for the local stack.

Each recipe is a frozen description of how one service is fetched,
installed, configured, launched and health-checked.  The recipes carry
no behaviour; :class:`~reposwarm.core.provisioner.ServiceProvisioner`
executes them.

Services
--------
* ``temporal`` — Docker Compose stack (postgres + temporal + temporal-ui).
* ``api`` — Node API server, built then started with ``npm start``.
* ``worker`` — Python worker in its own virtualenv; no HTTP endpoint.
* ``ui`` — Next.js UI started with ``npm run dev``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from reposwarm.config import TEMPORAL_NAMESPACE, TEMPORAL_TASK_QUEUE, ServiceConfig

TEMPORAL = "temporal"
API = "api"
WORKER = "worker"
UI = "ui"

POSTGRES_PORT = 5432
TEMPORAL_UI_CONTAINER_PORT = 8080

TEMPORAL_HEALTH_TIMEOUT: float = 60.0
API_HEALTH_TIMEOUT: float = 30.0
UI_HEALTH_TIMEOUT: float = 30.0

Command = tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ServiceRecipe:
    """Everything the provisioner needs to bring one service up."""

    name: str
    title: str
    directory: Path
    start: Command
    repo_url: str | None = None
    """Clone source; ``None`` for services without a repository."""
    files: dict[str, str] = field(default_factory=dict)
    """Extra files written into *directory* before launch."""
    install: tuple[Command, ...] = ()
    build: tuple[Command, ...] = ()
    env_file: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    secret_env: bool = False
    """Write the env file owner-only (it contains the bearer token)."""
    launch_env: bool = False
    """Also pass *env* to the launched process."""
    detached: bool = True
    health_url: str | None = None
    health_timeout: float = 30.0
    diagnostics: Command = ()
    """Command whose output is attached to a health-timeout error."""

    @property
    def log_path(self) -> Path:
        return self.directory / f"{self.name}.log"

    @property
    def pid_path(self) -> Path:
        return self.directory / f"{self.name}.pid"


# ---------------------------------------------------------------------------
# Rendering helpers (pure)
# ---------------------------------------------------------------------------

def render_env_file(env: dict[str, str]) -> str:
    """Serialise *env* as ``KEY=value`` lines."""
    return "".join(f"{key}={value}\n" for key, value in env.items())


def compose_manifest(config: ServiceConfig) -> str:
    """Return the docker-compose YAML for Temporal backed by postgres."""
    manifest = {
        "services": {
            "postgres": {
                "image": "postgres:16-alpine",
                "ports": [f"{POSTGRES_PORT}:{POSTGRES_PORT}"],
                "environment": {
                    "POSTGRES_USER": "temporal",
                    "POSTGRES_PASSWORD": "temporal",
                },
                "healthcheck": {
                    "test": ["CMD-SHELL", "pg_isready -U temporal"],
                    "interval": "5s",
                    "timeout": "5s",
                    "retries": 10,
                },
                "volumes": ["temporal-data:/var/lib/postgresql/data"],
            },
            "temporal": {
                "image": "temporalio/auto-setup:latest",
                "ports": [f"{config.temporal_port}:7233"],
                "environment": [
                    "DB=postgres12",
                    "POSTGRES_USER=temporal",
                    "POSTGRES_PWD=temporal",
                    "POSTGRES_SEEDS=postgres",
                    "DYNAMIC_CONFIG_FILE_PATH=config/dynamicconfig/development-sql.yaml",
                    "SKIP_DEFAULT_NAMESPACE_CREATION=false",
                ],
                "depends_on": {"postgres": {"condition": "service_healthy"}},
            },
            "temporal-ui": {
                "image": "temporalio/ui:latest",
                "ports": [f"{config.temporal_ui_port}:{TEMPORAL_UI_CONTAINER_PORT}"],
                "environment": ["TEMPORAL_ADDRESS=temporal:7233"],
                "depends_on": ["temporal"],
            },
        },
        "volumes": {"temporal-data": {}},
    }
    return yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False)


def _workflow_env(config: ServiceConfig) -> dict[str, str]:
    return {
        "TEMPORAL_ADDRESS": config.temporal_address,
        "TEMPORAL_NAMESPACE": TEMPORAL_NAMESPACE,
        "TEMPORAL_TASK_QUEUE": TEMPORAL_TASK_QUEUE,
        "AWS_REGION": config.region,
        "DYNAMODB_TABLE": config.dynamodb_table,
    }


# ---------------------------------------------------------------------------
# Recipes
# ---------------------------------------------------------------------------

def temporal_recipe(config: ServiceConfig, install_dir: Path) -> ServiceRecipe:
    return ServiceRecipe(
        name=TEMPORAL,
        title="Temporal (Docker Compose)",
        directory=install_dir / TEMPORAL,
        files={"docker-compose.yml": compose_manifest(config)},
        start=("docker", "compose", "up", "-d"),
        detached=False,
        health_url=config.temporal_health_url,
        health_timeout=TEMPORAL_HEALTH_TIMEOUT,
        diagnostics=("docker", "compose", "ps", "--format", "{{.Name}}\t{{.Status}}"),
    )


def api_recipe(config: ServiceConfig, install_dir: Path, token: str) -> ServiceRecipe:
    env = {
        "PORT": str(config.api_port),
        **_workflow_env(config),
        "DEFAULT_MODEL": config.default_model,
        "BEARER_TOKEN": token,
        "AUTH_MODE": "local",
    }
    return ServiceRecipe(
        name=API,
        title="API server",
        directory=install_dir / API,
        repo_url=config.api_repo_url,
        install=(("npm", "install"),),
        build=(("npm", "run", "build"),),
        env_file=".env",
        env=env,
        secret_env=True,
        start=("npm", "start"),
        health_url=config.api_health_url,
        health_timeout=API_HEALTH_TIMEOUT,
    )


def worker_recipe(
    config: ServiceConfig,
    install_dir: Path,
    token: str,
    *,
    python: str = "python3",
) -> ServiceRecipe:
    directory = install_dir / WORKER
    venv_bin = directory / ".venv" / "bin"
    env = {
        **_workflow_env(config),
        "DEFAULT_MODEL": config.default_model,
        "REPOSWARM_API_URL": f"{config.api_url}/v1",
        "REPOSWARM_API_TOKEN": token,
    }
    return ServiceRecipe(
        name=WORKER,
        title="Worker",
        directory=directory,
        repo_url=config.worker_repo_url,
        install=(
            (python, "-m", "venv", ".venv"),
            (str(venv_bin / "pip"), "install", "-r", "requirements.txt"),
        ),
        env_file=".env",
        env=env,
        secret_env=True,
        # The worker does not load .env itself.
        launch_env=True,
        start=(str(venv_bin / "python"), "-m", "worker.main"),
    )


def ui_recipe(config: ServiceConfig, install_dir: Path) -> ServiceRecipe:
    return ServiceRecipe(
        name=UI,
        title="UI",
        directory=install_dir / UI,
        repo_url=config.ui_repo_url,
        install=(("npm", "install"),),
        env_file=".env.local",
        env={"NEXT_PUBLIC_API_URL": config.api_url, "PORT": str(config.ui_port)},
        launch_env=True,
        start=("npm", "run", "dev"),
        health_url=config.ui_url,
        health_timeout=UI_HEALTH_TIMEOUT,
    )


def build_recipes(
    config: ServiceConfig,
    install_dir: Path,
    token: str,
    *,
    python: str = "python3",
) -> dict[str, ServiceRecipe]:
    """Return every recipe keyed by service name, in provisioning order."""
    return {
        TEMPORAL: temporal_recipe(config, install_dir),
        API: api_recipe(config, install_dir, token),
        WORKER: worker_recipe(config, install_dir, token, python=python),
        UI: ui_recipe(config, install_dir),
    }
