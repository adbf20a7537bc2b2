"""Database connection settings injected into the server configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from sonar_orchestrator.config import Configuration

_DEFAULT_DIALECT = "h2"
# Properties copied verbatim from the orchestrator configuration when present.
_PASS_THROUGH = ("sonar.jdbc.maxActive", "sonar.jdbc.maxIdle", "sonar.jdbc.minIdle", "sonar.jdbc.schema")


@dataclass(frozen=True)
class DatabaseClient:
    dialect: str = _DEFAULT_DIALECT
    url: str | None = None
    login: str | None = None
    password: str | None = None
    driver_file: Path | None = None
    additional_properties: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_configuration(cls, config: Configuration) -> DatabaseClient:
        driver = config.get_string("sonar.jdbc.driverFile")
        return cls(
            dialect=config.get_string("sonar.jdbc.dialect", _DEFAULT_DIALECT),
            url=config.get_string("sonar.jdbc.url"),
            login=config.get_string("sonar.jdbc.username"),
            password=config.get_string("sonar.jdbc.password"),
            driver_file=Path(driver) if driver else None,
            additional_properties={
                key: value
                for key in _PASS_THROUGH
                if (value := config.get_string(key)) is not None
            },
        )

    def connection_properties(self) -> dict[str, str]:
        """Return the JDBC properties that are actually set."""
        props = {
            "sonar.jdbc.url": self.url,
            "sonar.jdbc.username": self.login,
            "sonar.jdbc.password": self.password,
        }
        return {key: value for key, value in props.items() if value is not None}
