"""reposwarm — command-line client for the RepoSwarm platform.

Ships the local bootstrap that provisions Temporal, the API, the worker
and the UI on a developer machine.
"""

from reposwarm.version import __version__

__all__: list[str] = ["__version__"]
