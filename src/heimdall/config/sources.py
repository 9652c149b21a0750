"""Custom pydantic-settings source for Heimdall configuration.

This module provides:

- LayeredYamlSettingsSource: a pydantic-settings source that loads
  configuration from layered YAML files and deep-merges them.

Configuration layers (in precedence order, highest first):
1. Environment variables (handled by pydantic-settings)
2. Project config: .heimdall/config.yaml in the project root
3. User config: ~/.config/heimdall/config.yaml (or HEIMDALL_CONFIG_DIR)

Nested mappings merge key by key; scalars and lists from a higher layer
replace the lower one.

Environment variables:
- HEIMDALL_CONFIG_DIR: Override user config directory (default: ~/.config/heimdall)
"""

import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic.fields as _pydantic_fields
import pydantic_settings as _pydantic_settings
import yaml as _yaml

import heimdall.utils as utils

# Environment variable for overriding user config directory
ENV_CONFIG_DIR = "HEIMDALL_CONFIG_DIR"

PROJECT_CONFIG_DIR = ".heimdall"
CONFIG_FILE_NAME = "config.yaml"


class ConfigFileError(Exception):
    """Error loading or parsing a configuration file."""

    def __init__(self, path: _pathlib.Path, message: str) -> None:
        self.path = path
        super().__init__(f"Error in config file {path}: {message}")


def get_user_config_dir() -> _pathlib.Path:
    """
    Get the user config directory.

    Respects HEIMDALL_CONFIG_DIR if set, otherwise uses the XDG path.
    """
    config_dir_env = _os.environ.get(ENV_CONFIG_DIR)
    if config_dir_env:
        return _pathlib.Path(config_dir_env)
    return _pathlib.Path.home() / ".config" / "heimdall"


def get_user_config_path() -> _pathlib.Path:
    return get_user_config_dir() / CONFIG_FILE_NAME


def get_project_config_path(project_root: _pathlib.Path) -> _pathlib.Path:
    return project_root / PROJECT_CONFIG_DIR / CONFIG_FILE_NAME


def load_yaml_file(path: _pathlib.Path) -> dict[str, _typing.Any] | None:
    """
    Load a YAML config file.

    Returns:
        Parsed contents, or None if the file is empty.

    Raises:
        ConfigFileError: If the file cannot be read, is malformed YAML,
            or is not a mapping at the top level.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except PermissionError as e:
        raise ConfigFileError(path, f"permission denied: {e}") from e
    except OSError as e:
        raise ConfigFileError(path, f"cannot read file: {e}") from e

    try:
        parsed = _yaml.safe_load(content)
    except _yaml.YAMLError as e:
        raise ConfigFileError(path, f"invalid YAML: {e}") from e

    if parsed is None:
        return None

    if not isinstance(parsed, dict):
        type_name = type(parsed).__name__
        raise ConfigFileError(
            path,
            f"config must be a YAML mapping (dict), got {type_name}",
        )

    return parsed


class LayeredYamlSettingsSource(_pydantic_settings.PydanticBaseSettingsSource):
    """
    Settings source that merges the user and project YAML config files.

    Missing files are normal and skipped. A file that exists but cannot be
    parsed raises ConfigFileError.
    """

    def __init__(
        self,
        settings_cls: type[_pydantic_settings.BaseSettings],
        project_root: _pathlib.Path | None = None,
        *,
        user_config_path: _pathlib.Path | None = None,
    ) -> None:
        """
        Initialize the settings source.

        Args:
            settings_cls: The Settings class being populated.
            project_root: Project root for .heimdall/config.yaml, if any.
            user_config_path: Override path for the user config (for testing).
        """
        super().__init__(settings_cls)
        self._project_root = project_root
        self._user_config_path = user_config_path
        self._loaded_layers: list[tuple[str, _pathlib.Path]] = []
        self._merged = self._load_config_layers()

    def _load_config_layers(self) -> dict[str, _typing.Any]:
        layers: list[dict[str, _typing.Any]] = []

        for name, path in reversed(self.get_layer_paths()):
            if not path.exists():
                continue
            content = load_yaml_file(path)
            if content:
                layers.append(content)
                self._loaded_layers.append((name, path))

        # Highest precedence first, for display
        self._loaded_layers.reverse()
        return utils.deep_merge(*layers)

    def get_layer_paths(self) -> list[tuple[str, _pathlib.Path]]:
        """
        All config layers, loaded or not.

        Returns:
            (layer_name, path) tuples, highest precedence first.
        """
        layers: list[tuple[str, _pathlib.Path]] = []
        if self._project_root is not None:
            layers.append(("project", get_project_config_path(self._project_root)))
        layers.append(("user", self._user_config_path or get_user_config_path()))
        return layers

    def get_loaded_layers(self) -> list[tuple[str, _pathlib.Path]]:
        """Layers that existed and had content, highest precedence first."""
        return list(self._loaded_layers)

    def get_field_value(
        self,
        field: _pydantic_fields.FieldInfo,  # noqa: ARG002 - required by pydantic-settings interface
        field_name: str,
    ) -> tuple[_typing.Any, str, bool]:
        value = self._merged.get(field_name)
        return value, field_name, isinstance(value, (dict, list))

    def __call__(self) -> dict[str, _typing.Any]:
        """
        Return the merged config for pydantic validation.

        Unknown keys are included so Settings can report them.
        """
        return dict(self._merged)
