"""
Settings synchronizer - projects hook rules into the external CLI's settings.

The external CLI reads hook entries from its own settings.json:

```json
{
  "hooks": {
    "PreToolUse": [
      {"matcher": "*", "hooks": [
        {"type": "command", "command": "heimdall forward PreToolUse", "timeout": 30}
      ]}
    ]
  }
}
```

Heimdall owns one entry per event type that has enabled rules. The
entry runs the forwarder, which posts the event to the ingress where the
real rule matching happens. Entries are recognized as ours by the
forward command in their command string; everything else in the file is
left alone.

The read-modify-write holds an exclusive lock on a sibling ".lock" file,
and the new contents are written atomically.
"""

from __future__ import annotations

import json as _json
import logging as _logging
import math as _math
import pathlib as _pathlib
import typing as _typing

import heimdall.errors as errors
import heimdall.hooks.events as events
import heimdall.hooks.rules as rules
import heimdall.utils as utils

if _typing.TYPE_CHECKING:
    import heimdall.config as config
    import heimdall.hooks.store as store

_logger = _logging.getLogger(__name__)

Document = dict[str, _typing.Any]


def project_settings_path(project_path: str | _pathlib.Path) -> _pathlib.Path:
    """The external CLI's project-level settings file."""
    return _pathlib.Path(project_path) / ".claude" / "settings.json"


class SettingsSynchronizer:
    """
    One-way projection of enabled rules into external CLI settings files.

    Usage:
        synchronizer = SettingsSynchronizer(rule_store, settings)
        synchronizer.sync()                      # user settings
        synchronizer.sync(project_path="/repo")  # user + project settings
    """

    def __init__(
        self,
        rule_store: store.RuleStore,
        settings: config.Settings,
    ) -> None:
        self._store = rule_store
        self._forward_command = settings.sync.forward_command
        self._user_settings_path = settings.sync.user_settings_path
        self._lock_timeout = settings.sync.lock_timeout_seconds

    @property
    def owned_command_marker(self) -> str:
        """Substring that identifies an entry as ours."""
        return f"{self._forward_command} "

    @property
    def user_settings_path(self) -> _pathlib.Path:
        return self._user_settings_path

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def build_entries(
        self,
        hook_rules: _typing.Iterable[rules.HookRule],
    ) -> dict[str, dict[str, _typing.Any]]:
        """
        Build our entry for every event type with at least one enabled rule.

        Returns:
            Mapping of event name to settings entry, in event declaration order.
        """
        timeouts: dict[events.HookEventType, int] = {}
        for rule in hook_rules:
            if not rule.enabled:
                continue
            timeouts[rule.event_type] = max(timeouts.get(rule.event_type, 0), rule.timeout_ms)

        entries: dict[str, dict[str, _typing.Any]] = {}
        for event_type in events.HookEventType:
            if event_type not in timeouts:
                continue
            entries[event_type.value] = {
                "matcher": "*",
                "hooks": [
                    {
                        "type": "command",
                        "command": f"{self._forward_command} {event_type.value}",
                        "timeout": max(1, _math.ceil(timeouts[event_type] / 1000)),
                    }
                ],
            }
        return entries

    def is_owned(self, entry: _typing.Any) -> bool:
        """Whether a settings entry was written by us."""
        if not isinstance(entry, dict):
            return False
        for hook in entry.get("hooks") or []:
            command = hook.get("command") if isinstance(hook, dict) else None
            if isinstance(command, str) and self.owned_command_marker in command:
                return True
        return False

    def merge(
        self,
        document: Document,
        entries: dict[str, dict[str, _typing.Any]],
    ) -> Document:
        """
        Replace our entries in a settings document.

        Foreign entries keep their order; our entries for events without
        enabled rules are dropped. Empty event lists and an empty "hooks"
        object are removed. Other top-level keys are kept as-is.
        """
        result = dict(document)
        existing = document.get("hooks")
        hooks: dict[str, _typing.Any] = dict(existing) if isinstance(existing, dict) else {}

        for event_name in list(hooks):
            current = hooks[event_name]
            if not isinstance(current, list):
                continue
            hooks[event_name] = [entry for entry in current if not self.is_owned(entry)]

        for event_name, entry in entries.items():
            current = hooks.get(event_name)
            if not isinstance(current, list):
                current = []
            hooks[event_name] = [*current, entry]

        hooks = {k: v for k, v in hooks.items() if not (isinstance(v, list) and not v)}
        if hooks:
            result["hooks"] = hooks
        else:
            result.pop("hooks", None)
        return result

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    def sync(self, project_path: str | _pathlib.Path | None = None) -> list[_pathlib.Path]:
        """
        Write user-scope rules to the user settings file and, when a project
        is given, that project's rules to its settings file.

        Returns:
            The files that were written or already up to date.

        Raises:
            SettingsSyncError: If a file is unreadable or the lock times out.
        """
        user_rules = self._store.list_all(scope="user")
        paths = [self._apply(self._user_settings_path, self.build_entries(user_rules))]

        if project_path is not None:
            project_rules = self._store.list_all(scope="project", project_path=str(project_path))
            paths.append(
                self._apply(project_settings_path(project_path), self.build_entries(project_rules))
            )
        return paths

    def remove(self, project_path: str | _pathlib.Path | None = None) -> list[_pathlib.Path]:
        """Strip all of our entries from the user (or project) settings file."""
        path = (
            project_settings_path(project_path)
            if project_path is not None
            else self._user_settings_path
        )
        if not path.exists():
            return []
        return [self._apply(path, {})]

    def is_configured(self, path: _pathlib.Path | None = None) -> bool:
        """Whether a settings file (default: user settings) has any of our entries."""
        path = path or self._user_settings_path
        if not path.exists():
            return False
        hooks = self._read(path).get("hooks")
        if not isinstance(hooks, dict):
            return False
        return any(
            self.is_owned(entry)
            for current in hooks.values()
            if isinstance(current, list)
            for entry in current
        )

    def _read(self, path: _pathlib.Path) -> Document:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise errors.SettingsSyncError(f"Cannot read {path}: {e}") from e

        if not text.strip():
            return {}
        try:
            data = _json.loads(text)
        except ValueError as e:
            raise errors.SettingsSyncError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise errors.SettingsSyncError(f"{path} must contain a JSON object")
        return data

    def _apply(
        self,
        path: _pathlib.Path,
        entries: dict[str, dict[str, _typing.Any]],
    ) -> _pathlib.Path:
        try:
            with utils.exclusive_lock(path, self._lock_timeout):
                document = self._read(path)
                merged = self.merge(document, entries)
                if merged == document:
                    _logger.debug("Settings file %s already up to date", path)
                    return path
                utils.atomic_write_text(path, _json.dumps(merged, indent=2) + "\n")
        except TimeoutError as e:
            raise errors.SettingsSyncError(str(e)) from e
        except OSError as e:
            raise errors.SettingsSyncError(f"Cannot write {path}: {e}") from e

        _logger.info("Synced %d hook event(s) into %s", len(entries), path)
        return path
