"""Provision and supervise a SonarQube server for integration tests."""
from sonar_orchestrator.distribution import BundledPluginsPolicy, DistributionSpec, Edition
from sonar_orchestrator.errors import (
    InstallationError,
    OrchestratorError,
    ResolutionError,
    StartupError,
    StartupTimeoutError,
)
from sonar_orchestrator.orchestrator import Orchestrator
from sonar_orchestrator.server import ProcessState, ServerHandle

__all__ = [
    "BundledPluginsPolicy",
    "DistributionSpec",
    "Edition",
    "InstallationError",
    "Orchestrator",
    "OrchestratorError",
    "ProcessState",
    "ResolutionError",
    "ServerHandle",
    "StartupError",
    "StartupTimeoutError",
]
