"""Canonical operation keys.

A key is ``Tool(identifying-value)``: the command for ``Bash``, the path for
file tools, the URL for ``WebFetch``. Two requests with the same key are the
same operation for caching purposes.
"""

from __future__ import annotations

import json
from typing import Any

from warden.exceptions import InvalidRequest

MAX_PARAMETERS_BYTES = 1024 * 1024

# Tool -> parameters that identify the operation, in lookup order
IDENTIFYING_PARAMETERS: dict[str, tuple[str, ...]] = {
    "Bash": ("command",),
    "Read": ("file_path", "path"),
    "Write": ("file_path", "path"),
    "Edit": ("file_path", "path"),
    "Delete": ("path", "file_path"),
    "WebFetch": ("url",),
    "Database": ("query",),
    "Grep": ("pattern",),
    "Glob": ("pattern",),
    "LS": ("path",),
}

_KNOWN_TOOLS = {name.casefold(): name for name in IDENTIFYING_PARAMETERS}


def canonical_tool_name(tool_name: str) -> str:
    """Map a known tool to its registered spelling, e.g. ``bash`` to ``Bash``.

    Unknown tools keep the spelling they were given.
    """
    return _KNOWN_TOOLS.get(tool_name.casefold(), tool_name)


def identifying_value(tool_name: str, parameters: dict[str, Any]) -> str | None:
    """Return the identifying parameter value, or None for tools without one.

    Raises InvalidRequest if the tool is known but the parameter is missing.
    """
    names = IDENTIFYING_PARAMETERS.get(tool_name)
    if names is None:
        return None
    for name in names:
        value = parameters.get(name)
        if value is not None and str(value).strip():
            return str(value)
    raise InvalidRequest(tool_name, f"missing required parameter {' or '.join(names)!r}")


def canonical_key(tool_name: str, parameters: dict[str, Any]) -> str:
    """Build the canonical key for a request. Raises InvalidRequest."""
    try:
        size = len(json.dumps(parameters, default=str))
    except (TypeError, ValueError) as exc:
        raise InvalidRequest(tool_name, f"parameters are not serializable: {exc}") from exc
    if size > MAX_PARAMETERS_BYTES:
        raise InvalidRequest(tool_name, "parameters exceed 1 MiB")

    value = identifying_value(tool_name, parameters)
    if value is None:
        return f"{tool_name}(*)"
    return f"{tool_name}({value})"
