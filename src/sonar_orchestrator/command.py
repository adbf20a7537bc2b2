"""Build the command line that launches an installed server."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from sonar_orchestrator.errors import StartupError

if TYPE_CHECKING:
    from sonar_orchestrator.server import ServerHandle

JVM_FLAGS = (
    "-Xmx32m",
    "-server",
    "-Djava.awt.headless=true",
    "-Dsonar.enableStopCommand=true",
    "-Djava.net.preferIPv4Stack=true",
)
APP_JAR_PREFIX = "sonar-application-"


def java_executable(java_home: Path | None) -> str:
    """Return ``<java_home>/bin/java`` when *java_home* exists, else ``java`` from PATH."""
    name = "java.exe" if sys.platform == "win32" else "java"
    if java_home is None or not java_home.exists():
        return name
    return str(java_home / "bin" / name)


def find_application_jar(home: Path) -> Path:
    """Return the path of the single ``sonar-application-*.jar`` relative to *home*."""
    lib_dir = home / "lib"
    jars = []
    if lib_dir.is_dir():
        jars = [p for p in lib_dir.rglob(f"{APP_JAR_PREFIX}*.jar") if p.is_file()]
    if len(jars) != 1:
        raise StartupError(f"No or too many {APP_JAR_PREFIX}*.jar files found in: {lib_dir.resolve()}")
    return jars[0].relative_to(home)


class ServerCommandLineFactory:
    def __init__(self, java_home: Path | None = None):
        self.java_home = java_home

    def create(self, handle: ServerHandle) -> list[str]:
        # Relative jar path so that homes containing whitespace still work.
        jar = find_application_jar(handle.home)
        return [java_executable(self.java_home), *JVM_FLAGS, "-jar", jar.as_posix()]

