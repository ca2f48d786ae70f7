"""Error taxonomy for the policy engine.

None of these escape ``PolicyEngine.evaluate``: each one is converted into a
``deny`` decision with an explanatory reason. Rate limiting is not an error
and has no exception type.
"""

from __future__ import annotations


class WardenError(Exception):
    """Base exception for all Warden errors."""


class ConfigurationError(WardenError):
    """The rule source is missing, unreadable or malformed."""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"Invalid permissions configuration at {source}: {detail}")


class InvalidRequest(WardenError):
    """A request lacks the parameter that identifies the operation."""

    def __init__(self, tool_name: str, detail: str) -> None:
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Invalid request for {tool_name}: {detail}")


class ConfirmationUnavailable(WardenError):
    """No confirmation channel can answer (e.g. non-interactive context)."""


class AuditWriteFailure(WardenError):
    """An audit sink could not append an entry."""
