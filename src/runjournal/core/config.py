# src/runjournal/core/config.py
"""
Configuration schema and loading for runjournal.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction; code that needs a
different value builds a new snapshot with ``model_copy(update=...)``.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from runjournal.contracts.document import JOURNAL_SCHEMA_VERSION

# Identifier rule for store database and collection names
_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")

# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

DEFAULT_CHANNEL = "journal.collect"


class DocumentStoreSettings(BaseModel):
    """Connection snapshot for the remote journal store.

    Disabled unless ``enable`` is explicitly set. Every save inserts one
    new record into ``collection`` within ``database``.

    Example YAML:
        store:
          enable: true
          driver: postgresql+psycopg
          host: db.internal
          port: 5432
          user: journal
          password: ${JOURNAL_DB_PASSWORD}
          database: runs
          collection: journal
    """

    model_config = {"frozen": True}

    enable: bool = Field(default=False, description="Send journals to the remote store")
    driver: str = Field(
        default="postgresql+psycopg",
        description="SQLAlchemy driver name (dialect[+dbapi])",
    )
    host: str | None = Field(default="localhost", description="Store host")
    port: int | None = Field(default=None, gt=0, lt=65536, description="Store port (driver default when unset)")
    user: str | None = Field(default=None, description="User name")
    password: str | None = Field(default=None, description="User password")
    auth_source: str | None = Field(
        default=None,
        description="Database holding the user's credentials, passed as the authSource URL option",
    )
    database: str = Field(default="runjournal", description="Database name")
    collection: str = Field(default="journal", description="Collection (table) receiving journal records")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Upper bound on one remote save")

    @field_validator("collection")
    @classmethod
    def validate_collection(cls, v: str) -> str:
        if not _IDENTIFIER_PATTERN.match(v):
            raise ValueError(f"collection must be an identifier, got {v!r}")
        return v

    def redacted(self) -> dict[str, Any]:
        """Settings as a dict with the password masked, for logs and CLI output."""
        data = self.model_dump(mode="json")
        if data["password"]:
            data["password"] = "***"
        return data


class LoggingSettings(BaseModel):
    """Log rendering configuration."""

    model_config = {"frozen": True}

    json_output: bool = Field(default=False, description="Render logs as JSON lines")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class JournalSettings(BaseModel):
    """Top-level runjournal configuration.

    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    filename: str = Field(default="journal", min_length=1, description="Journal file path without .json suffix")
    channel: str = Field(default=DEFAULT_CHANNEL, min_length=1, description="Well-known collection channel name")
    schema_version: str = Field(default=JOURNAL_SCHEMA_VERSION, description="Version tag written to schema.version")
    store: DocumentStoreSettings = Field(default_factory=DocumentStoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Unresolvable references are left untouched so validation reports them.
    """

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            if default is not None:
                return default
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        if isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_expand_value(item) for item in value]
        return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    # Dynaconf upper-cases keys at every level
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def load_settings(config_path: Path) -> JournalSettings:
    """Load settings from YAML file with environment variable overrides.

    Precedence:
    1. Environment variables (RUNJOURNAL_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Nested keys use a double underscore: RUNJOURNAL_STORE__HOST=db.internal

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="RUNJOURNAL",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lower_keys(raw_config)
    raw_config = _expand_env_vars(raw_config)

    return JournalSettings(**raw_config)
