"""Artifact locations and the locators that turn them into local files."""
from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlparse

if TYPE_CHECKING:
    from sonar_orchestrator.artifactory import Artifactory
    from sonar_orchestrator.config import FileSystem

logger = logging.getLogger(__name__)

_TIMEOUT = 60


@dataclass(frozen=True)
class FileLocation:
    path: Path

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class MavenLocation:
    group_id: str
    artifact_id: str
    version: str
    packaging: str = "jar"
    classifier: str | None = None

    @property
    def filename(self) -> str:
        suffix = f"-{self.classifier}" if self.classifier else ""
        return f"{self.artifact_id}-{self.version}{suffix}.{self.packaging}"

    def relative_path(self) -> Path:
        """Path of the artifact inside a Maven repository layout."""
        return Path(*self.group_id.split("."), self.artifact_id, self.version, self.filename)

    def __str__(self) -> str:
        parts = [self.group_id, self.artifact_id, self.version, self.packaging]
        if self.classifier:
            parts.append(self.classifier)
        return "[" + ":".join(parts) + "]"


@dataclass(frozen=True)
class URLLocation:
    url: str
    filename: str | None = None

    def target_filename(self) -> str:
        if self.filename:
            return self.filename
        name = os.path.basename(urlparse(self.url).path)
        return name or hashlib.sha1(self.url.encode()).hexdigest()

    def __str__(self) -> str:
        return self.url


Location = FileLocation | MavenLocation | URLLocation


class ArtifactLocator(Protocol):
    """What the installer and the packaging resolver need from a locator."""

    def locate(self, location: Location) -> Path | None: ...

    def copy_to_directory(self, location: Location, to_dir: Path) -> Path | None: ...


class Locators:
    """Default locator: local files, Maven repositories and plain URLs.

    Maven artifacts are looked up in the local Maven repository, then in the
    orchestrator cache, then downloaded from Artifactory into the cache.
    """

    def __init__(self, file_system: FileSystem, artifactory: Artifactory | None = None):
        self.fs = file_system
        self.artifactory = artifactory

    def locate(self, location: Location) -> Path | None:
        """Return a local file for *location*, or ``None`` if it cannot be found."""
        if isinstance(location, FileLocation):
            return location.path if location.path.is_file() else None
        if isinstance(location, MavenLocation):
            return self._locate_maven(location)
        if isinstance(location, URLLocation):
            return self._locate_url(location)
        raise TypeError(f"Unknown location type: {type(location).__name__}")

    def copy_to_directory(self, location: Location, to_dir: Path) -> Path | None:
        """Copy the file behind *location* into *to_dir*.

        Returns the copied file, or ``None`` if the location cannot be found.
        """
        source = self.locate(location)
        if source is None:
            return None
        to_dir.mkdir(parents=True, exist_ok=True)
        target = to_dir / source.name
        shutil.copy2(source, target)
        return target

    def _locate_maven(self, location: MavenLocation) -> Path | None:
        local = self.fs.maven_local_repository / location.relative_path()
        if local.is_file():
            return local
        cached = self.fs.cache_dir / "maven" / location.relative_path()
        if cached.is_file():
            return cached
        if self.artifactory is None:
            return None
        cached.parent.mkdir(parents=True, exist_ok=True)
        if self.artifactory.download_to_file(location, cached):
            return cached
        return None

    def _locate_url(self, location: URLLocation) -> Path | None:
        digest = hashlib.sha1(location.url.encode()).hexdigest()
        target = self.fs.cache_dir / "urls" / digest / location.target_filename()
        if target.is_file():
            return target
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading %s", location.url)
        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent))
        try:
            with os.fdopen(fd, "wb") as out:
                with urllib.request.urlopen(location.url, timeout=_TIMEOUT) as response:
                    shutil.copyfileobj(response, out)
            os.replace(tmp_path, target)
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                logger.warning("Not found: %s", location.url)
                return None
            raise
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        return target
