"""Infrastructure layer — host and network integration.

This layer wraps all interaction with the operating system, external
commands, HTTP endpoints and the CLI config file.  Every raw exception
must be caught here and re-raised as a
:class:`~reposwarm.exceptions.ReposwarmError` subclass.

Rules
-----
* No imports from ``cli``.
* No user-facing output (no ``print()``, no Rich rendering).
* Must expose clean, typed interfaces consumed by the core layer.
"""

from reposwarm.infra.cli_config import CliConfig, load_cli_config, save_cli_config
from reposwarm.infra.environment_probe import detect
from reposwarm.infra.health_probe import HttpHealthProbe
from reposwarm.infra.process import SubprocessRunner

__all__: list[str] = [
    "CliConfig",
    "HttpHealthProbe",
    "SubprocessRunner",
    "detect",
    "load_cli_config",
    "save_cli_config",
]
