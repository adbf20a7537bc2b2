"""Shared pytest fixtures for sonar-orchestrator tests."""
import itertools
import sys
import zipfile
from pathlib import Path

import pytest

from sonar_orchestrator.config import Configuration
from sonar_orchestrator.distribution import Edition
from sonar_orchestrator.locator import Locators
from sonar_orchestrator.server import ServerHandle
from sonar_orchestrator.version import Version


# ---------------------------------------------------------------------------
# Fake server scripts, run with ``sys.executable -c`` from the server home
# ---------------------------------------------------------------------------

# Comes up, then exits once the stop flag is set in temp/sharedmemory.
COOPERATIVE_SERVER = """
import os, sys, time
print("starting", flush=True)
print("Process[ce] is up", flush=True)
path = os.path.join("temp", "sharedmemory")
while True:
    if os.path.exists(path):
        with open(path, "rb") as f:
            data = f.read(2)
        if len(data) > 1 and data[1] == 0xFF:
            print("stopping", flush=True)
            sys.exit(0)
    time.sleep(0.05)
"""

# Comes up and ignores every stop request.
STUCK_SERVER = """
import time
print("Process[ce] is up", flush=True)
while True:
    time.sleep(0.1)
"""

# Never reports being up.
SILENT_SERVER = """
import time
print("still booting", flush=True)
while True:
    time.sleep(0.1)
"""

# Dies during startup.
CRASHING_SERVER = """
import sys
print("Cannot bind port", flush=True)
sys.exit(3)
"""


class FakeCommandFactory:
    """Launches a Python script instead of the Java server."""

    def __init__(self, script: str):
        self.script = script
        self.handles = []

    def create(self, handle):
        self.handles.append(handle)
        return [sys.executable, "-c", self.script]


class FakePortProber:
    """Hands out predictable ports and records the hosts it was asked for."""

    def __init__(self, start: int = 20000):
        self._ports = itertools.count(start)
        self.hosts = []

    def __call__(self, host: str) -> int:
        self.hosts.append(host)
        return next(self._ports)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_archive(tmp_path):
    """Return a function building a fake SonarQube zip distribution."""

    def _make(
        name: str = "sonarqube-10.4.0.87286",
        bundled: tuple[str, ...] = ("sonar-java-plugin-7.30.jar", "sonar-python-plugin-4.14.jar"),
        extra_roots: tuple[str, ...] = (),
        with_root: bool = True,
    ) -> Path:
        archive = tmp_path / "dist" / f"{name}.zip"
        archive.parent.mkdir(parents=True, exist_ok=True)
        root = f"{name}/" if with_root else ""
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr(f"{root}lib/sonar-application-10.4.0.87286.jar", b"jar")
            zf.writestr(f"{root}conf/sonar.properties", "# defaults\n")
            zf.writestr(f"{root}temp/README.txt", "")
            for plugin in bundled:
                zf.writestr(f"{root}lib/extensions/{plugin}", b"plugin")
            for extra in extra_roots:
                zf.writestr(f"{extra}/file.txt", "")
        return archive

    return _make


@pytest.fixture
def configuration(tmp_path):
    """Configuration isolated from the environment, with a temp home and workspace."""
    return Configuration.create({
        "orchestrator.home": str(tmp_path / "orchestrator-home"),
        "orchestrator.workspaceDir": str(tmp_path / "workspace"),
        "maven.localRepository": str(tmp_path / "m2"),
    })


@pytest.fixture
def locators(configuration):
    return Locators(configuration.file_system)


@pytest.fixture
def port_prober():
    return FakePortProber()


@pytest.fixture
def server_home(tmp_path):
    home = tmp_path / "server"
    (home / "temp").mkdir(parents=True)
    return home


@pytest.fixture
def handle(server_home):
    return ServerHandle(
        home=server_home,
        edition=Edition.COMMUNITY,
        version=Version("10.4.0.87286"),
        url="http://127.0.0.1:9000",
    )
