"""Allow ``python -m reposwarm`` invocation.

This module simply delegates to the CLI error-boundary entry point so
that ``python -m reposwarm`` behaves identically to the ``reposwarm``
console script.
"""

from __future__ import annotations

from reposwarm.cli.app import cli

if __name__ == "__main__":
    cli()
