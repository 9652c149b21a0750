"""Configuration section types for Heimdall settings.

Each section is a pydantic model nested in Settings:
- ServerConfig: event ingress address and forwarder timeout
- HooksConfig: hook command defaults and the rules file
- AgentsConfig: agent store file and cleanup age
- SyncConfig: external CLI settings projection
- LoggingConfig: log level and optional log file

All types use `extra="allow"` so unknown keys are kept and can be reported
by `heimdall config show` as likely typos.
"""

import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic

import heimdall.constants as constants


def _default_config_dir() -> _pathlib.Path:
    return _pathlib.Path.home() / ".config" / "heimdall"


class ConfigBase(_pydantic.BaseModel):
    """
    Base class for all config sections.

    Unknown fields are preserved rather than dropped.
    """

    model_config = _pydantic.ConfigDict(extra="allow")

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Return fields that were provided but are not in the schema."""
        return dict(self.model_extra) if self.model_extra else {}

    def collect_all_extra_fields(
        self,
        prefix: str = "",
    ) -> dict[str, _typing.Any]:
        """
        Recursively collect unknown fields as a flat dict of dotted paths.

        Example: {"hooks.default_timout_ms": 1000}
        """
        result: dict[str, _typing.Any] = {}

        for key, value in self.get_extra_fields().items():
            path = f"{prefix}.{key}" if prefix else key
            result[path] = value

        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name, None)
            if isinstance(value, ConfigBase):
                child_prefix = f"{prefix}.{field_name}" if prefix else field_name
                result.update(value.collect_all_extra_fields(child_prefix))

        return result


class ServerConfig(ConfigBase):
    """
    Event ingress settings.

    YAML section: server.*
    """

    host: str = constants.DEFAULT_SERVER_HOST
    """Interface to bind. Keep this on loopback."""

    port: int = _pydantic.Field(default=constants.DEFAULT_SERVER_PORT, ge=1, le=65535)
    """Port the forwarder posts to."""

    forward_timeout_seconds: float = _pydantic.Field(
        default=constants.DEFAULT_FORWARD_TIMEOUT_SECONDS, gt=0
    )
    """How long the forwarder waits for a decision before allowing."""

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class HooksConfig(ConfigBase):
    """
    Hook execution settings.

    YAML section: hooks.*
    """

    default_timeout_ms: int = _pydantic.Field(
        default=constants.DEFAULT_HOOK_TIMEOUT_MS, gt=0
    )
    """Timeout for rules created without one."""

    rules_file: _pathlib.Path = _pydantic.Field(
        default_factory=lambda: _default_config_dir() / "rules.yaml"
    )
    """Where hook rules are persisted."""

    kill_grace_seconds: float = _pydantic.Field(
        default=constants.DEFAULT_KILL_GRACE_SECONDS, ge=0
    )
    """How long to drain output after a command exits or is killed."""

    @_pydantic.field_validator("rules_file", mode="after")
    @classmethod
    def _expand_rules_file(cls, value: _pathlib.Path) -> _pathlib.Path:
        return value.expanduser()


class AgentsConfig(ConfigBase):
    """
    Agent tracking settings.

    YAML section: agents.*
    """

    store_file: _pathlib.Path = _pydantic.Field(
        default_factory=lambda: _default_config_dir() / "agents.json"
    )
    """Where agent trees and metrics are persisted."""

    cleanup_max_age_hours: float = _pydantic.Field(
        default=constants.DEFAULT_CLEANUP_MAX_AGE_HOURS, gt=0
    )
    """Finished trees older than this are removed by cleanup."""

    @_pydantic.field_validator("store_file", mode="after")
    @classmethod
    def _expand_store_file(cls, value: _pathlib.Path) -> _pathlib.Path:
        return value.expanduser()


class SyncConfig(ConfigBase):
    """
    External CLI settings projection.

    YAML section: sync.*
    """

    forward_command: str = constants.DEFAULT_FORWARD_COMMAND
    """Command the external CLI runs per event; the event name is appended."""

    user_settings_path: _pathlib.Path = _pydantic.Field(
        default_factory=lambda: _pathlib.Path.home() / ".claude" / "settings.json"
    )
    """The external CLI's user-level settings file."""

    lock_timeout_seconds: float = _pydantic.Field(
        default=constants.DEFAULT_LOCK_TIMEOUT_SECONDS, gt=0
    )
    """How long to wait for the settings file lock."""

    @_pydantic.field_validator("forward_command")
    @classmethod
    def _validate_forward_command(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("forward_command must not be empty")
        return value

    @_pydantic.field_validator("user_settings_path", mode="after")
    @classmethod
    def _expand_settings_path(cls, value: _pathlib.Path) -> _pathlib.Path:
        return value.expanduser()


class LoggingConfig(ConfigBase):
    """
    Logging settings.

    YAML section: logging.*
    """

    level: _typing.Literal["debug", "info", "warning", "error"] = "info"
    """Log level for the CLI and the server."""

    file: _pathlib.Path | None = None
    """Also write logs to this file."""

    @_pydantic.field_validator("level", mode="before")
    @classmethod
    def _lowercase_level(cls, value: _typing.Any) -> _typing.Any:
        return value.lower() if isinstance(value, str) else value
