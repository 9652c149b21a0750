"""
Wires the stores, dispatcher, tracker and synchronizer from Settings.

The CLI builds one Services per invocation; tests build the parts they
need directly.
"""

from __future__ import annotations

import dataclasses as _dataclasses

import heimdall.agents as agents
import heimdall.config as config
import heimdall.hooks as hooks
import heimdall.notifications as notifications
import heimdall.server as server
import heimdall.sync as sync


@_dataclasses.dataclass
class Services:
    """Everything a command needs, sharing one rule store and notifier."""

    settings: config.Settings
    notifier: notifications.Notifier
    rule_store: hooks.RuleStore
    rules: hooks.RuleManager
    dispatcher: hooks.HookDispatcher
    agent_store: agents.AgentStore
    tracker: agents.AgentTracker
    synchronizer: sync.SettingsSynchronizer

    @classmethod
    def from_settings(cls, settings: config.Settings) -> Services:
        """
        Build the file-backed services.

        Raises:
            StoreError: If the rules or agents file exists but is unreadable.
        """
        notifier = notifications.Notifier()
        rule_store = hooks.YamlRuleStore(settings.hooks.rules_file)
        agent_store = agents.JsonAgentStore(settings.agents.store_file)
        runner = hooks.ProcessRunner(kill_grace_seconds=settings.hooks.kill_grace_seconds)
        return cls(
            settings=settings,
            notifier=notifier,
            rule_store=rule_store,
            rules=hooks.RuleManager(rule_store, notifier),
            dispatcher=hooks.HookDispatcher(rule_store, runner=runner, notifier=notifier),
            agent_store=agent_store,
            tracker=agents.AgentTracker(agent_store, notifier),
            synchronizer=sync.SettingsSynchronizer(rule_store, settings),
        )

    def create_server(self) -> server.HookServer:
        return server.HookServer(
            self.dispatcher,
            self.tracker,
            self.notifier,
            host=self.settings.server.host,
            port=self.settings.server.port,
        )
