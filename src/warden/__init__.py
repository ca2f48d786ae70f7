"""Warden: allow/deny/ask policy engine for AI agent tool invocations."""

__version__ = "0.1.0"
