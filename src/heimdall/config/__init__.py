"""
Configuration module for Heimdall.

Uses pydantic-settings for environment variable loading and layered YAML
config files.
"""

from heimdall.config.settings import Settings, find_project_root
from heimdall.config.sources import ConfigFileError

__all__ = ["ConfigFileError", "Settings", "find_project_root"]
