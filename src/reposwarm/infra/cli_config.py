"""Infrastructure: the CLI's persisted configuration file.

The file lives at ``~/.reposwarm/config.json`` and uses camelCase keys::

    {
      "apiUrl": "http://localhost:3000/v1",
      "apiToken": "…",
      "region": "us-east-1",
      "defaultModel": "us.anthropic.claude-sonnet-4-6",
      "chunkSize": 10,
      "outputFormat": "pretty"
    }

Optional local-setup keys (``workerRepoUrl``, ``apiPort``, …) override the
defaults in :class:`~reposwarm.config.ServiceConfig` for ``new --local``.

Rules
-----
* The directory is created ``0700`` and the file written ``0600``.
* ``REPOSWARM_API_URL`` / ``REPOSWARM_API_TOKEN`` override loaded values.
* Raw ``OSError`` / validation errors are re-raised as :class:`ConfigError`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from reposwarm.config import DEFAULT_MODEL, DEFAULT_REGION, ServiceConfig
from reposwarm.exceptions import ConfigError, ConfigWriteError

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".reposwarm"
CONFIG_FILE_NAME = "config.json"
DEFAULT_CHUNK_SIZE = 10

_LOCAL_SETUP_KEYS: tuple[str, ...] = (
    "worker_repo_url",
    "api_repo_url",
    "ui_repo_url",
    "dynamodb_table",
    "temporal_port",
    "temporal_ui_port",
    "api_port",
    "ui_port",
)


class CliConfig(BaseModel):
    """In-memory form of ``config.json``."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    api_url: str = "http://localhost:3000/v1"
    api_token: str = ""
    region: str = DEFAULT_REGION
    default_model: str = DEFAULT_MODEL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    output_format: Literal["pretty", "json"] = "pretty"

    # Local setup overrides
    worker_repo_url: str | None = None
    api_repo_url: str | None = None
    ui_repo_url: str | None = None
    dynamodb_table: str | None = None
    temporal_port: int | None = None
    temporal_ui_port: int | None = None
    api_port: int | None = None
    ui_port: int | None = None

    def local_overrides(self) -> dict[str, Any]:
        """Return the :class:`ServiceConfig` keyword overrides set in the file."""
        overrides: dict[str, Any] = {
            key: getattr(self, key)
            for key in _LOCAL_SETUP_KEYS
            if getattr(self, key) is not None
        }
        for key in ("default_model", "region"):
            if key in self.model_fields_set:
                overrides[key] = getattr(self, key)
        return overrides


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def config_dir(home: Path | None = None) -> Path:
    """Return the configuration directory (``~/.reposwarm``)."""
    return (home or Path.home()) / CONFIG_DIR_NAME


def config_path(home: Path | None = None) -> Path:
    """Return the configuration file path."""
    return config_dir(home) / CONFIG_FILE_NAME


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------

def load_cli_config(path: Path | None = None) -> CliConfig:
    """Read the config file, falling back to defaults when it is absent.

    Raises
    ------
    ConfigError
        If the file exists but cannot be read or parsed.
    """
    target = path or config_path()
    try:
        raw = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        cfg = CliConfig()
    except OSError as exc:
        raise ConfigError(f"reading config {target}: {exc}") from exc
    else:
        try:
            cfg = CliConfig.model_validate_json(raw)
        except ValidationError as exc:
            raise ConfigError(
                f"parsing config {target}: {exc}",
                hint=f"Fix or delete {target} and try again.",
            ) from exc

    return _apply_env_overrides(cfg)


def _apply_env_overrides(cfg: CliConfig) -> CliConfig:
    updates: dict[str, str] = {}
    if url := os.environ.get("REPOSWARM_API_URL"):
        updates["api_url"] = url
    if token := os.environ.get("REPOSWARM_API_TOKEN"):
        updates["api_token"] = token
    return cfg.model_copy(update=updates) if updates else cfg


def save_cli_config(cfg: CliConfig, path: Path | None = None) -> Path:
    """Write *cfg* to disk with owner-only permissions.

    Raises
    ------
    ConfigWriteError
        If the directory or file cannot be written.
    """
    target = path or config_path()
    payload = cfg.model_dump_json(by_alias=True, exclude_none=True, indent=2)
    try:
        target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        target.write_text(payload + "\n", encoding="utf-8")
        target.chmod(0o600)
    except OSError as exc:
        raise ConfigWriteError(
            f"writing config {target}: {exc}",
            hint="Without it the CLI cannot reach the local stack.",
        ) from exc
    logger.debug("Wrote CLI config to %s", target)
    return target


def write_local_cli_config(
    config: ServiceConfig,
    token: str,
    path: Path | None = None,
) -> Path:
    """Point the CLI at a freshly provisioned local API.

    The file is rewritten from scratch: local API URL, the generated
    token, the run's region and model, and default operational settings.
    """
    cfg = CliConfig(
        api_url=f"{config.api_url}/v1",
        api_token=token,
        region=config.region,
        default_model=config.default_model,
        chunk_size=DEFAULT_CHUNK_SIZE,
        output_format="pretty",
    )
    return save_cli_config(cfg, path)


def mask_token(token: str) -> str:
    """Return *token* with all but the last six characters hidden."""
    if len(token) <= 8:
        return "***"
    return "***..." + token[-6:]
