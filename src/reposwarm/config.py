"""Centralised defaults for the local RepoSwarm stack.

Repository URLs, ports, the DynamoDB table and the model identifier are
defined here and nowhere else.  :class:`ServiceConfig` is immutable and is
threaded through every provisioning call.

Precedence (highest first)
--------------------------
1. Explicit keyword arguments (local-setup keys saved in the CLI config
   file are passed this way).
2. ``REPOSWARM_*`` environment variables (e.g. ``REPOSWARM_API_PORT``).
3. The defaults below.

``reposwarm new --local`` passes the host's AWS region as a keyword
argument only when neither the CLI config file nor ``REPOSWARM_REGION``
sets one.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_WORKER_REPO_URL = "https://github.com/royosherove/repo-swarm.git"
DEFAULT_API_REPO_URL = "https://github.com/loki-bedlam/reposwarm-api.git"
DEFAULT_UI_REPO_URL = "https://github.com/loki-bedlam/reposwarm-ui.git"

DEFAULT_DYNAMODB_TABLE = "reposwarm-cache"
DEFAULT_MODEL = "us.anthropic.claude-sonnet-4-6"
DEFAULT_REGION = "us-east-1"

DEFAULT_TEMPORAL_PORT = 7233
DEFAULT_TEMPORAL_UI_PORT = 8233
DEFAULT_API_PORT = 3000
DEFAULT_UI_PORT = 3001

TEMPORAL_NAMESPACE = "default"
TEMPORAL_TASK_QUEUE = "investigate-task-queue"


class ServiceConfig(BaseSettings):
    """Immutable configuration for one local bootstrap run."""

    model_config = SettingsConfigDict(
        env_prefix="REPOSWARM_",
        frozen=True,
        extra="ignore",
    )

    worker_repo_url: str = DEFAULT_WORKER_REPO_URL
    api_repo_url: str = DEFAULT_API_REPO_URL
    ui_repo_url: str = DEFAULT_UI_REPO_URL
    dynamodb_table: str = DEFAULT_DYNAMODB_TABLE
    default_model: str = DEFAULT_MODEL
    temporal_port: int = DEFAULT_TEMPORAL_PORT
    temporal_ui_port: int = DEFAULT_TEMPORAL_UI_PORT
    api_port: int = DEFAULT_API_PORT
    ui_port: int = DEFAULT_UI_PORT
    region: str = DEFAULT_REGION

    @property
    def temporal_address(self) -> str:
        return f"localhost:{self.temporal_port}"

    @property
    def temporal_health_url(self) -> str:
        return f"http://localhost:{self.temporal_port}/api/v1/namespaces"

    @property
    def temporal_ui_url(self) -> str:
        return f"http://localhost:{self.temporal_ui_port}"

    @property
    def api_url(self) -> str:
        return f"http://localhost:{self.api_port}"

    @property
    def api_health_url(self) -> str:
        return f"{self.api_url}/v1/health"

    @property
    def ui_url(self) -> str:
        return f"http://localhost:{self.ui_port}"
