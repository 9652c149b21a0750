"""
Settings configuration using pydantic-settings.

Loads configuration from:
1. Constructor arguments (highest precedence)
2. Environment variables with HEIMDALL_ prefix
3. .env file (only when HEIMDALL_ENV_FILE points at one)
4. Layered YAML config files:
   - Project config: .heimdall/config.yaml (highest)
   - User config: ~/.config/heimdall/config.yaml
5. Field defaults (lowest)

Nested config uses double underscore delimiter:
  HEIMDALL_SERVER__PORT=24000
  HEIMDALL_HOOKS__DEFAULT_TIMEOUT_MS=10000
"""

import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings

import heimdall.config.sources as sources
import heimdall.config.types as types

_PROJECT_MARKERS = (sources.PROJECT_CONFIG_DIR, ".git")


def _get_env_file() -> str | None:
    """Determine which .env file to load.

    Only an explicit HEIMDALL_ENV_FILE is honored; a .env in the current
    directory is ignored.
    """
    if env_file := _os.environ.get("HEIMDALL_ENV_FILE"):
        if _pathlib.Path(env_file).exists():
            return env_file
    return None


def find_project_root(start_path: _pathlib.Path | None = None) -> _pathlib.Path | None:
    """
    Find the project root directory.

    Walks up from start_path (default: cwd) looking for a .heimdall
    directory or a .git entry. The home directory itself is never a
    project root.

    Returns:
        The project root, or None if no marker was found.
    """
    current = (start_path or _pathlib.Path.cwd()).resolve()
    home = _pathlib.Path.home().resolve()

    while True:
        if current != home and any((current / m).exists() for m in _PROJECT_MARKERS):
            return current
        if current == current.parent:
            return None
        current = current.parent


class Settings(_pydantic_settings.BaseSettings):
    """
    Heimdall configuration settings.

    All settings can be overridden via environment variables with HEIMDALL_ prefix.
    For nested config, use double underscore: HEIMDALL_SERVER__PORT=24000

    Config precedence (highest to lowest):
    1. Constructor arguments
    2. Environment variables (HEIMDALL_*)
    3. .env file
    4. Project config (.heimdall/config.yaml)
    5. User config (~/.config/heimdall/config.yaml)
    6. Field defaults
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix="HEIMDALL_",
        env_file=_get_env_file(),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # HEIMDALL_SERVER__PORT
        extra="allow",  # Preserve unknown fields for config show
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[_pydantic_settings.BaseSettings],
        init_settings: _pydantic_settings.PydanticBaseSettingsSource,
        env_settings: _pydantic_settings.PydanticBaseSettingsSource,
        dotenv_settings: _pydantic_settings.PydanticBaseSettingsSource,
        file_secret_settings: _pydantic_settings.PydanticBaseSettingsSource,
    ) -> tuple[_pydantic_settings.PydanticBaseSettingsSource, ...]:
        """
        Configure settings sources with precedence:
        1. init_settings (constructor args), highest
        2. env_settings (HEIMDALL_* env vars)
        3. dotenv_settings (.env file)
        4. yaml_settings (project + user config.yaml)
        5. (defaults via Field definitions), lowest
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            sources.LayeredYamlSettingsSource(settings_cls, find_project_root()),
            file_secret_settings,
        )

    @classmethod
    def construct_without_dotenv(cls, **kwargs: _typing.Any) -> "Settings":
        """Create Settings without loading any .env file (test isolation)."""
        return cls(_env_file=None, **kwargs)  # type: ignore[call-arg]

    version: int = _pydantic.Field(default=1, description="Config schema version")

    server: types.ServerConfig = _pydantic.Field(default_factory=types.ServerConfig)
    """Event ingress settings."""

    hooks: types.HooksConfig = _pydantic.Field(default_factory=types.HooksConfig)
    """Hook execution settings."""

    agents: types.AgentsConfig = _pydantic.Field(default_factory=types.AgentsConfig)
    """Agent tracking settings."""

    sync: types.SyncConfig = _pydantic.Field(default_factory=types.SyncConfig)
    """External CLI settings projection."""

    logging: types.LoggingConfig = _pydantic.Field(default_factory=types.LoggingConfig)
    """Logging settings."""

    def collect_unknown_fields(self) -> dict[str, _typing.Any]:
        """
        Unknown config keys as dotted paths, top level included.

        Example: {"sever": {"port": 1}, "hooks.default_timout_ms": 10}
        """
        result: dict[str, _typing.Any] = dict(self.model_extra or {})
        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name)
            if isinstance(value, types.ConfigBase):
                result.update(value.collect_all_extra_fields(field_name))
        return result

    def to_display_dict(self) -> dict[str, _typing.Any]:
        """Known settings as JSON-compatible data."""
        return self.model_dump(
            mode="json",
            include=set(self.__class__.model_fields),
        )
