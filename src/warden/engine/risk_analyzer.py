"""Heuristic risk scoring for operation requests.

Each tool with a heuristic registers a pure scorer:
(parameters) -> (points, factors). Points are additive and the total is
clamped to 0-100. Tools without a scorer are always low risk.

The score is advisory. It never overrides an explicit deny or allow rule.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Protocol

from warden.schemas.decision import RiskAssessment

Scorer = Callable[[dict[str, Any]], tuple[int, list[str]]]


class RiskAnalyzer(Protocol):
    def assess(self, tool_name: str, parameters: dict[str, Any]) -> RiskAssessment: ...


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

SCORER_REGISTRY: dict[str, Scorer] = {}


def register_scorer(tool_name: str) -> Callable[[Scorer], Scorer]:
    def decorator(func: Scorer) -> Scorer:
        SCORER_REGISTRY[tool_name] = func
        return func

    return decorator


def _no_risk(parameters: dict[str, Any]) -> tuple[int, list[str]]:
    return 0, []


def _text(parameters: dict[str, Any], *names: str) -> str:
    for name in names:
        value = parameters.get(name)
        if value is not None:
            return str(value)
    return ""


# ---------------------------------------------------------------------------
# Bash
# ---------------------------------------------------------------------------

_DANGEROUS_KEYWORDS: list[tuple[str, re.Pattern[str]]] = [
    ("sudo", re.compile(r"\bsudo\b")),
    ("rm", re.compile(r"\brm\b")),
    ("del", re.compile(r"\bdel\b", re.IGNORECASE)),
    ("format", re.compile(r"\bformat\b", re.IGNORECASE)),
    ("kill", re.compile(r"\bkill(?:all)?\b")),
    ("chmod 777", re.compile(r"\bchmod\s+(?:-R\s+)?777\b")),
    ("download piped to shell", re.compile(r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|da)?sh\b")),
]

_DEVICE_REDIRECT = re.compile(r">\s*/dev/")


@register_scorer("Bash")
def score_bash(parameters: dict[str, Any]) -> tuple[int, list[str]]:
    command = _text(parameters, "command")
    score = 0
    factors: list[str] = []

    for label, regex in _DANGEROUS_KEYWORDS:
        if regex.search(command):
            score += 30
            factors.append(f"Dangerous command keyword: {label}")

    if _DEVICE_REDIRECT.search(command):
        score += 40
        factors.append("Output redirected to a device path")

    pipes = command.count("|")
    if pipes > 2:
        score += 10 * (pipes - 2)
        factors.append(f"Long pipe chain ({pipes} pipes)")

    return score, factors


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------

_CONFIG_NAMES = re.compile(r"config|\.env", re.IGNORECASE)

_SYSTEM_DIRECTORIES = (
    "c:\\windows",
    "c:\\program files",
    "/etc",
    "/usr/bin",
    "/usr/sbin",
    "/bin",
    "/sbin",
    "/boot",
    "/system",
)

_EXECUTABLE_EXTENSIONS = (".exe", ".dll", ".sys", ".bat", ".cmd")


def _under(path: str, directory: str) -> bool:
    path = path.lower()
    return path == directory or path.startswith(directory + "/") or path.startswith(directory + "\\")


@register_scorer("Write")
def score_write(parameters: dict[str, Any]) -> tuple[int, list[str]]:
    path = _text(parameters, "file_path", "path")
    score = 0
    factors: list[str] = []

    if _CONFIG_NAMES.search(path):
        score += 40
        factors.append("Writes a configuration file")

    if any(_under(path, d) for d in _SYSTEM_DIRECTORIES):
        score += 80
        factors.append("Writes inside a system directory")

    if path.lower().endswith(_EXECUTABLE_EXTENSIONS):
        factors.append(f"Executable file type: {path[path.rfind('.'):]}")

    return score, factors


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------

_CREDENTIAL_PATTERNS = [
    re.compile(r"""password\s*=\s*["'].*["']""", re.IGNORECASE),
    re.compile(r"""api[_-]?key\s*=\s*["'].*["']""", re.IGNORECASE),
    re.compile(r"""secret\s*=\s*["'].*["']""", re.IGNORECASE),
    re.compile(r"""token\s*=\s*["'].*["']""", re.IGNORECASE),
]


@register_scorer("Edit")
def score_edit(parameters: dict[str, Any]) -> tuple[int, list[str]]:
    old = _text(parameters, "old_string")
    new = _text(parameters, "new_string")
    for pattern in _CREDENTIAL_PATTERNS:
        if pattern.search(old) or pattern.search(new):
            return 60, ["Edit touches credentials"]
    return 0, []


# ---------------------------------------------------------------------------
# Delete (critical paths are blocked by the rule store, not scored)
# ---------------------------------------------------------------------------


@register_scorer("Delete")
def score_delete(parameters: dict[str, Any]) -> tuple[int, list[str]]:
    path = _text(parameters, "path", "file_path")
    if "*" in path:
        return 0, ["Bulk deletion (wildcard in path)"]
    return 0, []


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

_DESTRUCTIVE_SQL = re.compile(r"\b(?:DROP|TRUNCATE)\b", re.IGNORECASE)
_DELETE_SQL = re.compile(r"\bDELETE\b", re.IGNORECASE)
_WHERE_SQL = re.compile(r"\bWHERE\b", re.IGNORECASE)


@register_scorer("Database")
def score_database(parameters: dict[str, Any]) -> tuple[int, list[str]]:
    query = _text(parameters, "query")
    score = 0
    factors: list[str] = []

    if _DESTRUCTIVE_SQL.search(query):
        score += 70
        factors.append("Destructive query (DROP/TRUNCATE)")

    if _DELETE_SQL.search(query) and not _WHERE_SQL.search(query):
        score += 60
        factors.append("DELETE without WHERE clause")

    return score, factors


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class HeuristicRiskAnalyzer:
    """Scores requests with the registered per-tool heuristics."""

    def __init__(self, registry: dict[str, Scorer] | None = None) -> None:
        self._registry = SCORER_REGISTRY if registry is None else registry

    def assess(self, tool_name: str, parameters: dict[str, Any]) -> RiskAssessment:
        scorer = self._registry.get(tool_name, _no_risk)
        score, factors = scorer(parameters)
        return RiskAssessment.from_score(score, factors)
