"""Glob matching of rule patterns against canonical keys.

Patterns look like ``Tool(argument)``. Matching is case-insensitive and
anchored at both ends. ``*`` and ``**`` both match any run of characters,
slashes included. A ``prefix:*`` argument matches the prefix followed by
nothing, a colon or whitespace and anything after it, so ``Bash(git push:*)``
covers ``Bash(git push origin main)``. A bare tool name matches every
invocation of that tool.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

_TOOL_ONLY = re.compile(r"^[A-Za-z_][\w.-]*$")
_PREFIX_SUFFIX = ":*)"


@lru_cache(maxsize=4096)
def _compile(pattern: str) -> re.Pattern[str] | None:
    """Compile a wildcard pattern. Returns None for exact-match patterns."""
    if _TOOL_ONLY.match(pattern):
        pattern = f"{pattern}(*)"
    if "*" not in pattern:
        return None

    tail = ""
    if pattern.endswith(_PREFIX_SUFFIX):
        pattern = pattern[: -len(_PREFIX_SUFFIX)]
        tail = r"(?:[:\s].*)?\)"

    parts = re.split(r"\*+", pattern)
    body = ".*".join(re.escape(part) for part in parts)
    return re.compile(body + tail, re.IGNORECASE | re.DOTALL)


def matches(key: str, pattern: str) -> bool:
    """True if *pattern* matches the whole of *key*."""
    compiled = _compile(pattern)
    if compiled is None:
        return key.casefold() == pattern.casefold()
    return compiled.fullmatch(key) is not None


def first_match(key: str, patterns: Iterable[str]) -> str | None:
    """Return the first pattern in *patterns* that matches *key*."""
    for pattern in patterns:
        if matches(key, pattern):
            return pattern
    return None
