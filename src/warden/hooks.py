"""PreToolUse hook adapter for agent runtimes.

The runtime calls the hook with ``{"tool_name": ..., "tool_input": {...}}``
before running a tool. The hook answers ``{"continue": True}`` to let it run
or ``{"decision": "block", "reason": ...}`` to stop it. When an operator
approved the call with edited parameters, the edit is returned under
``hookSpecificOutput.updatedInput``.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from warden.engine.orchestrator import PolicyEngine

HookResult = dict[str, Any]
Hook = Callable[..., Awaitable[HookResult]]


def decision_to_hook_result(
    allowed: bool, reason: str, updated_input: dict[str, Any] | None = None
) -> HookResult:
    if allowed and updated_input is not None:
        return {
            "continue": True,
            "hookSpecificOutput": {"hookEventName": "PreToolUse", "updatedInput": updated_input},
        }
    if allowed:
        return {"continue": True}
    return {"decision": "block", "reason": reason}


def pre_tool_use_hook(engine: PolicyEngine) -> Hook:
    """Build a PreToolUse hook that routes every tool call through *engine*."""

    async def hook(input_data: dict[str, Any], tool_use_id: str | None = None, *_: Any) -> HookResult:
        tool_name = input_data.get("tool_name") or ""
        tool_input = input_data.get("tool_input") or {}
        if not isinstance(tool_input, dict):
            tool_input = {"value": tool_input}
        decision = await engine.evaluate(tool_name, tool_input, session_id=input_data.get("session_id"))
        return decision_to_hook_result(decision.allowed, decision.reason, decision.updated_parameters)

    return hook
