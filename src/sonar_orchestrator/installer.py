"""Unpack a distribution archive into a private home and configure it."""
from __future__ import annotations

import itertools
import logging
import shutil
import sys
import threading
import zipfile
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

from sonar_orchestrator.config import Configuration, FileSystem
from sonar_orchestrator.database import DatabaseClient
from sonar_orchestrator.distribution import DistributionSpec
from sonar_orchestrator.errors import InstallationError
from sonar_orchestrator.locator import ArtifactLocator, Location
from sonar_orchestrator.network import (
    LOOPBACK_ADDRESS,
    WILDCARD_ADDRESSES,
    format_host,
    get_next_available_port,
)
from sonar_orchestrator.packaging import Packaging
from sonar_orchestrator.properties import store_properties
from sonar_orchestrator.server import ServerHandle

logger = logging.getLogger(__name__)

BUNDLED_PLUGIN_DIRS = ("lib/bundled-plugins", "lib/extensions")
BUNDLED_PLUGINS_TARGET = "lib/extensions"
DOWNLOADS_DIR = "extensions/downloads"
JDBC_DRIVER_DIR = "extensions/jdbc-driver"
PROPERTIES_FILE = "conf/sonar.properties"
DEFAULT_WEB_PORT = 9000

# Production endpoints; tests must never report to the staging ones.
TELEMETRY_DEFAULTS = {
    "sonar.telemetry.url": "https://telemetry.sonarsource.com/sonarqube",
    "sonar.telemetry.metrics.url": "https://telemetry.sonarsource.com/sonarqube/metrics",
    "sonar.ai.suggestions.url": "https://api.sonarqube.io",
}
_STAGING_MARKER = "staging"

_PLATFORM_JVM_OPTS = {
    "linux": ("-Djava.security.egd=file:/dev/./urandom",),
}
_JVM_OPTS_KEYS = ("sonar.web.javaAdditionalOpts", "sonar.ce.javaAdditionalOpts")


class InstallationDirectoryPool:
    """Hands out unique installation directory names for this interpreter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count(1)

    def next(self) -> int:
        with self._lock:
            return next(self._counter)


_shared_pool = InstallationDirectoryPool()


def is_cluster_search_node(props: dict[str, str]) -> bool:
    return (
        props.get("sonar.cluster.enabled", "").lower() == "true"
        and props.get("sonar.cluster.node.type", "").lower() == "search"
    )


def append_jvm_opts(current: str | None, opts: tuple[str, ...]) -> str:
    """Append each of *opts* to *current* unless it is already there."""
    tokens = (current or "").split()
    for opt in opts:
        if opt not in tokens:
            tokens.append(opt)
    return " ".join(tokens)


def base_url(host: str, port: int | str, context: str = "") -> str:
    if host in WILDCARD_ADDRESSES:
        host = "localhost"
    return f"http://{format_host(host)}:{port}{context}"


class ServerInstaller:
    """Build a ready-to-launch server home from a resolved ``Packaging``."""

    def __init__(
        self,
        file_system: FileSystem,
        locators: ArtifactLocator,
        database: DatabaseClient | None = None,
        configuration: Configuration | None = None,
        port_prober: Callable[[str], int] = get_next_available_port,
        pool: InstallationDirectoryPool | None = None,
        platform: str | None = None,
    ):
        self.fs = file_system
        self.locators = locators
        self.database = database or DatabaseClient()
        self.configuration = configuration or Configuration.create()
        self.port_prober = port_prober
        self.pool = pool or _shared_pool
        self.platform = platform or sys.platform

    def install(self, packaging: Packaging, spec: DistributionSpec) -> ServerHandle:
        home = self._unzip(packaging.zip)
        self._prepare_plugins(home, spec)
        self._copy_jdbc_driver(home)

        props = dict(spec.server_properties)
        if not spec.empty_configuration:
            self._complete_properties(props, spec)
            path = home / PROPERTIES_FILE
            logger.info("Configuring %s", path)
            try:
                store_properties(path, props, comment="Generated by Orchestrator")
            except OSError as exc:
                raise InstallationError(f"Fail to configure [{path}]: {exc}") from exc

        host = props.get("sonar.web.host") or LOOPBACK_ADDRESS
        port = props.get("sonar.web.port") or DEFAULT_WEB_PORT
        search_port = props.get("sonar.cluster.node.search.port") or props.get("sonar.search.port")
        return ServerHandle(
            home=home,
            edition=packaging.edition,
            version=packaging.version,
            url=base_url(host, port, props.get("sonar.web.context", "")),
            search_port=int(search_port) if search_port else None,
            cluster_node_name=props.get("sonar.cluster.node.name"),
        )

    # ------------------------------------------------------------------
    # Unpacking
    # ------------------------------------------------------------------

    def _unzip(self, zip_path: Path) -> Path:
        to_dir = self.fs.workspace / str(self.pool.next())
        try:
            if to_dir.exists():
                shutil.rmtree(to_dir)
            to_dir.mkdir(parents=True)
            logger.info("Unzipping %s to %s", zip_path, to_dir)
            with zipfile.ZipFile(zip_path) as zf:
                zf.extractall(to_dir)
        except (OSError, zipfile.BadZipFile) as exc:
            raise InstallationError(f"Fail to unzip {zip_path} to {to_dir}: {exc}") from exc

        roots = [p for p in to_dir.iterdir() if p.is_dir()]
        if len(roots) != 1:
            raise InstallationError(f"ZIP is badly structured. Missing root directory in {to_dir}")
        return roots[0]

    # ------------------------------------------------------------------
    # Plugins and driver
    # ------------------------------------------------------------------

    def _prepare_plugins(self, home: Path, spec: DistributionSpec) -> None:
        policy = spec.bundled_plugins_policy
        if not policy.keep_all:
            logger.info("Remove distribution plugins")
            for rel in BUNDLED_PLUGIN_DIRS:
                directory = home / rel
                if not directory.is_dir():
                    continue
                for f in directory.iterdir():
                    if f.is_file() and not policy.retains(f.name):
                        try:
                            f.unlink()
                        except OSError as exc:
                            raise InstallationError(f"Fail to delete bundled plugin {f}: {exc}") from exc

        self._copy_plugins(spec.bundled_plugins, home / BUNDLED_PLUGINS_TARGET)
        self._copy_plugins(spec.plugins, home / DOWNLOADS_DIR)

    def _copy_plugins(self, locations: tuple[Location, ...], to_dir: Path) -> None:
        for location in locations:
            try:
                plugin = self.locators.copy_to_directory(location, to_dir)
            except OSError as exc:
                raise InstallationError(f"Can not copy the plugin {location}: {exc}") from exc
            if plugin is None or not plugin.exists():
                raise InstallationError(f"Can not find the plugin {location}")
            logger.info("Installed plugin: %s", plugin.name)

    def _copy_jdbc_driver(self, home: Path) -> None:
        driver = self.database.driver_file
        if driver is None:
            return
        driver_dir = home / JDBC_DRIVER_DIR / self.database.dialect
        try:
            driver_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(driver, driver_dir / driver.name)
        except OSError as exc:
            raise InstallationError(f"Fail to copy JDBC driver [{driver}]: {exc}") from exc

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _complete_properties(self, props: dict[str, str], spec: DistributionSpec) -> None:
        """Fill in *props* in place. Values already present are never replaced."""
        for key, value in self.database.connection_properties().items():
            props.setdefault(key, value)
        for key, value in self.database.additional_properties.items():
            props.setdefault(key, value)
        props.setdefault("sonar.log.console", "true")

        self._set_telemetry_urls(props)

        cluster_search = is_cluster_search_node(props)
        if cluster_search:
            missing = [
                key for key in ("sonar.cluster.search.hosts", "sonar.cluster.es.hosts")
                if not props.get(key)
            ]
            if missing:
                raise InstallationError(
                    f"Missing properties for cluster search node: {', '.join(missing)}"
                )

        host = props.setdefault("sonar.web.host", LOOPBACK_ADDRESS)
        if "sonar.web.port" not in props:
            container_port = self.configuration.get_string("orchestrator.container.port")
            props["sonar.web.port"] = container_port or str(self._probe(host))

        if cluster_search:
            props.setdefault("sonar.cluster.node.search.host", host)
            self._allocate_port(props, "sonar.cluster.node.search.port", host)
            props.setdefault("sonar.cluster.node.es.host", host)
            self._allocate_port(props, "sonar.cluster.node.es.port", host)
        else:
            search_host = props.setdefault("sonar.search.host", host)
            self._allocate_port(props, "sonar.search.port", search_host)
            self._allocate_port(props, "sonar.es.port", search_host)

        opts = _PLATFORM_JVM_OPTS.get(self.platform)
        if opts:
            for key in _JVM_OPTS_KEYS:
                props[key] = append_jvm_opts(props.get(key), opts)

        if not spec.default_force_authentication:
            props.setdefault("sonar.forceAuthentication", "false")
        if not spec.default_admin_credentials_redirect:
            props.setdefault("sonar.forceRedirectOnDefaultAdminCredentials", "false")

    def _set_telemetry_urls(self, props: dict[str, str]) -> None:
        for key, default in TELEMETRY_DEFAULTS.items():
            value = props.get(key)
            if value is None:
                props[key] = default
            elif _STAGING_MARKER in (urlparse(value).hostname or value):
                raise InstallationError(f"Property {key} must not point to a staging host: {value}")

    def _allocate_port(self, props: dict[str, str], key: str, host: str) -> None:
        if key not in props:
            props[key] = str(self._probe(host))

    def _probe(self, host: str) -> int:
        try:
            return self.port_prober(host)
        except OSError as exc:
            raise InstallationError(f"Can't find an open network port on {host}: {exc}") from exc
