"""Exceptions raised while provisioning a server."""
from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for every failure surfaced to the caller."""


class ResolutionError(OrchestratorError):
    """The requested distribution cannot be mapped to an archive."""


class InstallationError(OrchestratorError):
    """The archive could not be unpacked or configured."""


class StartupError(OrchestratorError):
    """The server process exited before it reported being up."""

    def __init__(self, message: str, exit_code: int | None = None):
        if exit_code is not None:
            message = f"{message} (exit code {exit_code})"
        super().__init__(message)
        self.exit_code = exit_code


class StartupTimeoutError(StartupError):
    """The server did not report being up within the startup timeout."""
