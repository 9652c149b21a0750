"""
CLI module for Heimdall.

Provides the command-line interface using Click.
"""

from heimdall.cli.main import cli, main

__all__ = ["main", "cli"]
