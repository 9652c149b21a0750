"""
Exception hierarchy for Heimdall.

Only persistence failures (StoreError) are allowed to escape dispatch and
tracker operations. Everything else about a misbehaving hook or a late
lifecycle event is converted into a result or a sentinel value.
"""


class HeimdallError(Exception):
    """Base class for all Heimdall errors."""

    pass


class RuleNotFoundError(HeimdallError):
    """Raised when a hook rule id does not exist."""

    def __init__(self, rule_id: int) -> None:
        self.rule_id = rule_id
        super().__init__(f"Hook rule not found: {rule_id}")


class AgentNotFoundError(HeimdallError):
    """Raised when an agent is registered under a parent that is not tracked."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Agent not found: {session_id}")


class StoreError(HeimdallError):
    """Raised when a rule or agent record cannot be persisted or loaded."""

    pass


class SettingsSyncError(HeimdallError):
    """Raised when the external CLI settings file cannot be updated."""

    pass
