"""Map an edition and a version (or alias) to Maven coordinates."""
from __future__ import annotations

import re
from typing import Protocol

from sonar_orchestrator.distribution import DistributionSpec, Edition
from sonar_orchestrator.errors import OrchestratorError, ResolutionError
from sonar_orchestrator.locator import Location, MavenLocation
from sonar_orchestrator.version import Version

PUBLIC_GROUP_ID = "org.sonarsource.sonarqube"
PRIVATE_GROUP_ID = "com.sonarsource.sonarqube"
PUBLIC_ARTIFACT_ID = "sonar-application"

# First version published under edition-specific coordinates.
ARTIFACT_SCHEME_BASELINE = "7.2"

_ALIASES = ("DEV", "LATEST_RELEASE", "DOGFOOD")
_BRACKETS_RE = re.compile(r"\[([^\]]*)\]")

_EDITION_ARTIFACTS = {
    Edition.DEVELOPER: "sonarqube-developer",
    Edition.ENTERPRISE: "sonarqube-enterprise",
    Edition.ENTERPRISE_LW: "sonarqube-enterprise-lw",
    Edition.DATACENTER: "sonarqube-datacenter",
}


class AliasResolver(Protocol):
    def resolve_version(self, group_id: str, artifact_id: str, alias: str, prefix: str) -> str | None: ...


def is_alias(version: str) -> bool:
    return version.startswith(_ALIASES)


def is_unsupported_alias(version: str) -> bool:
    return version.startswith("LTS") or "COMPATIBLE" in version


def alias_prefix(alias: str) -> str:
    """Return the bracket content of an alias.

    ``"LATEST_RELEASE"`` -> ``""``, ``"LATEST_RELEASE[7.1]"`` -> ``"7.1"``.
    """
    m = _BRACKETS_RE.search(alias)
    return m.group(1).strip() if m else ""


def resolve_series(alias: str) -> Version:
    """Return the version bound an alias is scoped to.

    Falls back to ``ARTIFACT_SCHEME_BASELINE`` when the alias has no
    (or empty) brackets.
    """
    return Version(alias_prefix(alias) or ARTIFACT_SCHEME_BASELINE)


def coordinates_for(edition: Edition, version: Version) -> tuple[str, str]:
    """Return ``(group_id, artifact_id)`` of the distribution zip."""
    baseline = Version(ARTIFACT_SCHEME_BASELINE)
    if edition is Edition.COMMUNITY or not version.is_greater_than_or_equals(baseline.major, baseline.minor):
        return PUBLIC_GROUP_ID, PUBLIC_ARTIFACT_ID
    try:
        return PRIVATE_GROUP_ID, _EDITION_ARTIFACTS[edition]
    except KeyError:
        raise OrchestratorError(f"Unknown SonarQube edition: {edition}") from None


class VersionResolver:
    """Turn a ``DistributionSpec`` into the location of its archive."""

    def __init__(self, alias_resolver: AliasResolver):
        self.alias_resolver = alias_resolver

    def resolve(self, spec: DistributionSpec) -> Location:
        if spec.zip_location is not None:
            return spec.zip_location
        if not spec.version:
            raise ResolutionError("Missing SonarQube version")

        requested = spec.version.strip()
        if is_unsupported_alias(requested):
            raise ResolutionError(f"Unsupported version alias: {requested}")

        if is_alias(requested):
            try:
                series = resolve_series(requested)
            except ValueError as exc:
                raise ResolutionError(f"Invalid version alias {requested}: {exc}") from exc
            group_id, artifact_id = coordinates_for(spec.edition, series)
            resolved = self.alias_resolver.resolve_version(
                group_id, artifact_id, requested, alias_prefix(requested)
            )
            if not resolved:
                raise ResolutionError(
                    f"Version can not be resolved: [{group_id}:{artifact_id}:{requested}:zip]"
                )
            return MavenLocation(group_id, artifact_id, resolved, packaging="zip")

        try:
            version = Version(requested)
        except ValueError as exc:
            raise ResolutionError(str(exc)) from exc
        group_id, artifact_id = coordinates_for(spec.edition, version)
        return MavenLocation(group_id, artifact_id, requested, packaging="zip")
