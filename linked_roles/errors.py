"""
Errors raised by the linking flow and provider clients. HTTP translation happens in main.py.
"""


class LinkingError(Exception):
    """Base class for linking flow errors."""


class StateMismatch(LinkingError):
    """Signed cookie does not match the returned state (forged callback, or cookie expired/cleared)."""


class StateExpired(LinkingError):
    """No pending ScoutID leg for this state; the user must restart from /linked-role."""


class ReauthorizationRequired(LinkingError):
    """Token set is no longer in the store; the user has to go through the flow again."""

    def __init__(self, provider: str, key: str):
        super().__init__(f"No stored {provider} tokens for {key}; re-authorization required")
        self.provider = provider
        self.key = key


class ProviderError(LinkingError):
    """Non-2xx response from Discord, ScoutID or ScoutNet."""

    def __init__(self, provider: str, action: str, status_code: int, detail: str = ""):
        message = f"Error {action}: [{status_code}] {provider}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)
        self.provider = provider
        self.action = action
        self.status_code = status_code
        self.detail = detail
