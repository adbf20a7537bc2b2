"""Caller-facing entry point: resolve, install, start and stop servers."""
from __future__ import annotations

import logging
from typing import Callable

from sonar_orchestrator.artifactory import Artifactory
from sonar_orchestrator.command import ServerCommandLineFactory
from sonar_orchestrator.config import Configuration
from sonar_orchestrator.database import DatabaseClient
from sonar_orchestrator.distribution import DistributionSpec
from sonar_orchestrator.installer import ServerInstaller
from sonar_orchestrator.locator import ArtifactLocator, Locators
from sonar_orchestrator.network import get_next_available_port
from sonar_orchestrator.packaging import PackagingResolver
from sonar_orchestrator.resolver import AliasResolver, VersionResolver
from sonar_orchestrator.server import (
    DEFAULT_STARTUP_TIMEOUT,
    DEFAULT_STOP_TIMEOUT,
    ProcessState,
    ServerHandle,
    ServerProcess,
)
from sonar_orchestrator.watcher import StartupLogWatcher

logger = logging.getLogger(__name__)


class Orchestrator:
    """Wires the resolver, installer and process controller together.

    Collaborators default to the ones built from *configuration* (Artifactory
    for aliases and downloads, the local Maven repository, a free-port probe)
    and can be replaced individually.
    """

    def __init__(
        self,
        configuration: Configuration | None = None,
        locators: ArtifactLocator | None = None,
        alias_resolver: AliasResolver | None = None,
        database: DatabaseClient | None = None,
        port_prober: Callable[[str], int] = get_next_available_port,
        startup_log_watcher: StartupLogWatcher | None = None,
        command_factory: ServerCommandLineFactory | None = None,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
    ):
        self.configuration = configuration or Configuration.create_env()
        fs = self.configuration.file_system

        artifactory = None
        if locators is None or alias_resolver is None:
            artifactory = Artifactory.from_configuration(self.configuration)
        self.locators = locators or Locators(fs, artifactory)
        self.alias_resolver = alias_resolver or artifactory

        self.packaging_resolver = PackagingResolver(VersionResolver(self.alias_resolver), self.locators)
        self.installer = ServerInstaller(
            fs,
            self.locators,
            database=database or DatabaseClient.from_configuration(self.configuration),
            configuration=self.configuration,
            port_prober=port_prober,
        )
        self.command_factory = command_factory or ServerCommandLineFactory(fs.java_home)
        self.startup_log_watcher = startup_log_watcher
        self.startup_timeout = startup_timeout
        self.stop_timeout = stop_timeout
        self._processes: dict[ServerHandle, ServerProcess] = {}

    def resolve_and_install(self, spec: DistributionSpec) -> ServerHandle:
        packaging = self.packaging_resolver.resolve(spec)
        handle = self.installer.install(packaging, spec)
        logger.info("Installed SonarQube %s in %s", handle.version, handle.home)
        return handle

    def start(self, handle: ServerHandle) -> ServerProcess:
        """Start the server of *handle*; a stopped or failed one gets a fresh controller."""
        process = self._processes.get(handle)
        if process is None or process.state in (ProcessState.STOPPED, ProcessState.FAILED):
            process = ServerProcess(
                handle,
                self.command_factory,
                watcher=self.startup_log_watcher,
                startup_timeout=self.startup_timeout,
                stop_timeout=self.stop_timeout,
            )
            self._processes[handle] = process
        return process.start()

    def stop(self, handle: ServerHandle) -> None:
        process = self._processes.get(handle)
        if process is not None:
            process.stop()

    def stop_all(self) -> None:
        for process in self._processes.values():
            process.stop()

    def is_alive(self, handle: ServerHandle) -> bool:
        process = self._processes.get(handle)
        return process is not None and process.is_alive
