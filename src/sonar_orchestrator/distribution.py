"""The caller's description of the server to provision."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sonar_orchestrator.locator import Location


class Edition(Enum):
    COMMUNITY = "community"
    DEVELOPER = "developer"
    ENTERPRISE = "enterprise"
    ENTERPRISE_LW = "enterprise-lw"
    DATACENTER = "datacenter"


@dataclass(frozen=True)
class BundledPluginsPolicy:
    """Which plugins shipped inside the archive survive installation."""

    keep_all: bool = False
    keep_prefixes: tuple[str, ...] = ()

    @classmethod
    def keep_all_plugins(cls) -> BundledPluginsPolicy:
        return cls(keep_all=True)

    @classmethod
    def keep_none(cls) -> BundledPluginsPolicy:
        return cls()

    @classmethod
    def keep_matching(cls, *prefixes: str) -> BundledPluginsPolicy:
        return cls(keep_prefixes=tuple(prefixes))

    def retains(self, filename: str) -> bool:
        return self.keep_all or filename.startswith(self.keep_prefixes)


@dataclass(frozen=True)
class DistributionSpec:
    """Immutable installation request.

    ``zip_location`` points at a local archive and bypasses version
    resolution entirely; otherwise ``version`` is required and may be a
    literal version or an alias such as ``LATEST_RELEASE[9.9]`` or ``DEV``.
    """

    edition: Edition = Edition.COMMUNITY
    version: str | None = None
    zip_location: Location | None = None
    bundled_plugins: tuple[Location, ...] = ()
    plugins: tuple[Location, ...] = ()
    bundled_plugins_policy: BundledPluginsPolicy = field(default_factory=BundledPluginsPolicy.keep_none)
    server_properties: dict[str, str] = field(default_factory=dict)
    empty_configuration: bool = False
    # Keep the server's own default instead of relaxing it for tests.
    default_force_authentication: bool = False
    default_admin_credentials_redirect: bool = False

    def server_property(self, key: str) -> str | None:
        return self.server_properties.get(key)
