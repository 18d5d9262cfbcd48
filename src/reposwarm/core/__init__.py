"""Core layer — domain models, service recipes and the setup pipeline.

Rules
-----
* No ``print()`` calls; progress goes through the injected ``Printer``.
* Subprocesses and HTTP only through the protocols in
  :mod:`reposwarm.core.protocols`.
* No imports from ``cli`` or ``infra``.
"""

from reposwarm.core.models import (
    Environment,
    ProcessHandle,
    SetupResult,
    StepResult,
    StepStatus,
)
from reposwarm.core.orchestrator import StepOrchestrator
from reposwarm.core.protocols import CommandRunner, HealthProbe, Printer
from reposwarm.core.provisioner import ServiceProvisioner
from reposwarm.core.services import ServiceRecipe

__all__: list[str] = [
    "CommandRunner",
    "Environment",
    "HealthProbe",
    "Printer",
    "ProcessHandle",
    "ServiceProvisioner",
    "ServiceRecipe",
    "SetupResult",
    "StepOrchestrator",
    "StepResult",
    "StepStatus",
]
