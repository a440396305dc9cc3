"""
Driver configuration for dbmigrate.

A DriverConfig carries everything a driver needs to obtain its single
connection plus the execution settings (dry run) handed to the execution
gateway. Configs are built from a database.json style mapping or from a
connection URI; reading those from disk is left to the caller.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, get_args
from urllib.parse import parse_qs, unquote, urlparse

from .exceptions import ConfigurationError
from .types import DriverType, sanitize_connection_string

# URI schemes accepted for each driver
_SCHEME_ALIASES: Dict[str, DriverType] = {
    "pg": "pg",
    "postgres": "pg",
    "postgresql": "pg",
    "mysql": "mysql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class DriverConfig:
    """Connection parameters and execution settings for one driver."""

    driver: DriverType
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    native: bool = False
    db: Optional[Any] = None
    dry_run: bool = False
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.driver not in get_args(DriverType):
            raise ConfigurationError(
                f"Unsupported driver: {self.driver}", config_key="driver"
            )
        if self.port is not None:
            try:
                self.port = int(self.port)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid port: {self.port}", config_key="port"
                ) from e

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> "DriverConfig":
        """
        Create a config from a database.json style mapping.

        Args:
            settings: Mapping with a ``driver`` key and connection parameters.
                Keys that are not connection parameters are kept in ``options``.

        Returns:
            Driver configuration

        Raises:
            ConfigurationError: If the driver is missing or unsupported
        """
        if "driver" not in settings:
            raise ConfigurationError("No driver specified", config_key="driver")

        values = dict(settings)
        driver = _SCHEME_ALIASES.get(str(values.pop("driver")).lower())
        if driver is None:
            raise ConfigurationError(
                f"Unsupported driver: {settings['driver']}", config_key="driver"
            )

        known = {
            "host",
            "port",
            "user",
            "password",
            "database",
            "native",
            "db",
            "dry_run",
        }
        kwargs = {key: values.pop(key) for key in list(values) if key in known}
        if "dryRun" in values:
            kwargs["dry_run"] = bool(values.pop("dryRun"))
        options = dict(values.pop("options", {}) or {})
        options.update(values)

        return cls(driver=driver, options=options, **kwargs)

    @classmethod
    def from_uri(cls, uri: str, dry_run: bool = False) -> "DriverConfig":
        """
        Create a config from a connection URI.

        Examples: ``pg://user:secret@localhost:5432/app?sslmode=require``,
        ``mysql://root@db/app``, ``sqlite:///var/app.db``.

        Args:
            uri: Connection URI
            dry_run: Whether statements should only be logged

        Returns:
            Driver configuration

        Raises:
            ConfigurationError: If the URI cannot be parsed
        """
        try:
            parsed = urlparse(uri)
            port = parsed.port
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid connection URI {sanitize_connection_string(uri)}: {e}"
            ) from e

        driver = _SCHEME_ALIASES.get(parsed.scheme.lower())
        if driver is None:
            raise ConfigurationError(
                f"Unsupported URI scheme: {parsed.scheme or '(none)'}",
                config_key="driver",
            )

        options: Dict[str, Any] = {}
        native = False
        if parsed.query:
            for key, values in parse_qs(parsed.query).items():
                if key == "native":
                    native = values[0].lower() in _TRUE_VALUES
                elif values:
                    options[key] = values[0]

        if driver == "sqlite":
            # sqlite:///relative.db and sqlite:////abs/path.db
            database = parsed.path[1:] if parsed.path.startswith("/") else parsed.path
            return cls(
                driver=driver,
                database=database or ":memory:",
                dry_run=dry_run,
                options=options,
            )

        return cls(
            driver=driver,
            host=parsed.hostname,
            port=port,
            user=unquote(parsed.username) if parsed.username else None,
            password=unquote(parsed.password) if parsed.password else None,
            database=parsed.path.lstrip("/") or None,
            native=native,
            dry_run=dry_run,
            options=options,
        )

    def connection_params(self) -> Dict[str, Any]:
        """Connection keyword arguments with unset values removed."""
        params: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
        }
        params.update(self.options)
        return {k: v for k, v in params.items() if v is not None}

    def describe(self) -> str:
        """Password-free description of the target for log output."""
        if self.driver == "sqlite":
            return f"sqlite:///{self.database}"
        auth = f"{self.user}:***@" if self.user else ""
        port = f":{self.port}" if self.port else ""
        return f"{self.driver}://{auth}{self.host or 'localhost'}{port}/{self.database or ''}"
