"""Orchestrator configuration.

Settings come from three layers, later ones winning:

1. ``config.toml`` in the orchestrator home (``~/.sonar/orchestrator/``)
2. environment variables
3. explicit overrides passed by the caller

Keys keep their Java-style dotted names (``orchestrator.workspaceDir``,
``sonar.jdbc.url``); nested TOML tables are flattened to dotted keys.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path

ORCHESTRATOR_HOME = "~/.sonar/orchestrator/"
CONFIG_FILENAME = "config.toml"


def get_orchestrator_home(env: Mapping[str, str] | None = None) -> Path:
    """Return the orchestrator home, honouring ``orchestrator.home`` / ``ORCHESTRATOR_HOME``."""
    env = os.environ if env is None else env
    for key in ("orchestrator.home", "ORCHESTRATOR_HOME"):
        value = env.get(key)
        if value:
            return Path(value).expanduser()
    return Path(ORCHESTRATOR_HOME).expanduser()


def _flatten(data: Mapping, prefix: str = "") -> dict[str, str]:
    flat: dict[str, str] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, prefix=f"{name}."))
        elif isinstance(value, bool):
            flat[name] = "true" if value else "false"
        else:
            flat[name] = str(value)
    return flat


def load_config(home: Path) -> dict[str, str]:
    """Read ``config.toml`` from *home* and return it as a flat dict.

    Returns an empty dict if the file does not exist.
    """
    path = home / CONFIG_FILENAME
    if not path.exists():
        return {}
    with open(path, "rb") as f:
        return _flatten(tomllib.load(f))


class Configuration:
    """Read-only view over the merged orchestrator settings."""

    def __init__(self, props: Mapping[str, str], home: Path | None = None):
        self._props = dict(props)
        self.home = home if home is not None else get_orchestrator_home(self._props)
        self._file_system: FileSystem | None = None

    @classmethod
    def create_env(cls, overrides: Mapping[str, str] | None = None) -> Configuration:
        """Build a configuration from ``config.toml``, the environment and *overrides*."""
        layered = {**os.environ, **(overrides or {})}
        home = get_orchestrator_home(layered)
        props = load_config(home)
        props.update(layered)
        return cls(props, home=home)

    @classmethod
    def create(cls, props: Mapping[str, str] | None = None) -> Configuration:
        """Build a configuration from *props* only (no environment, no file)."""
        return cls(props or {})

    def get_string(self, key: str, default: str | None = None) -> str | None:
        value = self._props.get(key)
        if key == "sonar.jdbc.dialect" and value is not None and value.lower() == "embedded":
            return "h2"
        return default if value is None else value

    def get_string_by_keys(self, *keys: str) -> str | None:
        """Return the value of the first key that is set."""
        for key in keys:
            value = self.get_string(key)
            if value is not None:
                return value
        return None

    @property
    def file_system(self) -> FileSystem:
        if self._file_system is None:
            self._file_system = FileSystem(self.home, self)
        return self._file_system


class FileSystem:
    """Well-known directories derived from the configuration."""

    def __init__(self, home: Path, config: Configuration):
        self.orchestrator_home = home
        self.workspace = _dir(config, ("orchestrator.workspaceDir",), Path("target"))
        self.java_home = _dir(config, ("java.home", "JAVA_HOME"), None)
        self.maven_local_repository = _dir(
            config,
            ("maven.localRepository", "MAVEN_LOCAL_REPOSITORY"),
            Path("~/.m2/repository").expanduser(),
        )

    @property
    def cache_dir(self) -> Path:
        return self.orchestrator_home / "cache"


def _dir(config: Configuration, keys: tuple[str, ...], default: Path | None) -> Path | None:
    value = config.get_string_by_keys(*keys)
    if value:
        return Path(value).expanduser()
    return default
