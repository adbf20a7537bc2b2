"""Resolve a distribution request to a local archive."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from sonar_orchestrator.distribution import DistributionSpec, Edition
from sonar_orchestrator.errors import ResolutionError
from sonar_orchestrator.locator import ArtifactLocator, MavenLocation
from sonar_orchestrator.resolver import VersionResolver
from sonar_orchestrator.version import Version

logger = logging.getLogger(__name__)

_ZIP_VERSION_RE = re.compile(r"^.*-(\d+.*)\.zip$")


@dataclass(frozen=True)
class Packaging:
    edition: Edition
    version: Version
    zip: Path


def guess_version_from_zip_name(zip_path: Path) -> Version:
    """Extract the version from names like ``sonarqube-developer-7.3.1.zip``."""
    m = _ZIP_VERSION_RE.match(zip_path.name)
    if m is None:
        raise ResolutionError(f"Fail to extract version from filename: {zip_path.name}")
    return Version(m.group(1))


class PackagingResolver:
    def __init__(self, version_resolver: VersionResolver, locators: ArtifactLocator):
        self.version_resolver = version_resolver
        self.locators = locators

    def resolve(self, spec: DistributionSpec) -> Packaging:
        location = self.version_resolver.resolve(spec)
        try:
            zip_path = self.locators.locate(location)
        except OSError as exc:
            raise ResolutionError(f"Fail to locate {location}: {exc}") from exc
        if zip_path is None or not zip_path.exists():
            if isinstance(location, MavenLocation):
                raise ResolutionError(f"SonarQube {spec.version} not found: {location}")
            raise ResolutionError(f"SonarQube not found at {location}")

        if isinstance(location, MavenLocation):
            version = Version(location.version)
        else:
            version = guess_version_from_zip_name(zip_path)
        logger.info("Resolved SonarQube %s %s to %s", spec.edition.value, version, zip_path)
        return Packaging(spec.edition, version, zip_path)
