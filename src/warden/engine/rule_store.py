"""Deny/allow/ask rule lists, loaded from a JSON permissions file.

The active rules are an immutable RuleSet snapshot. Loading and appending
build a new snapshot and swap the reference, so an evaluation running
concurrently sees either the old or the new lists, never a mix.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from pydantic import ValidationError
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from warden.engine.defaults import CRITICAL_DELETE_PATHS, DEFAULT_DOCUMENT, FALLBACK_RULES
from warden.engine.pattern_matcher import first_match
from warden.exceptions import ConfigurationError
from warden.schemas.policy import PermissionRules, PermissionsDocument, RuleTier

logger = logging.getLogger("warden.rules")

RuleSource = str | os.PathLike | Mapping[str, Any] | PermissionsDocument

_DRIVE_ROOT = re.compile(r"^[A-Za-z]:[\\/]?$")
_CRITICAL = {p.casefold() for p in CRITICAL_DELETE_PATHS}


@dataclass(frozen=True)
class RuleSet:
    """One immutable generation of the rule lists."""

    deny: tuple[str, ...] = ()
    allow: tuple[str, ...] = ()
    ask: tuple[str, ...] = ()
    version: int = 0
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    fallback: bool = False

    @classmethod
    def from_rules(cls, rules: PermissionRules, version: int, fallback: bool = False) -> RuleSet:
        return cls(
            deny=tuple(rules.deny),
            allow=tuple(rules.allow),
            ask=tuple(rules.ask),
            version=version,
            fallback=fallback,
        )

    def patterns(self, tier: RuleTier) -> tuple[str, ...]:
        return getattr(self, tier.value)


@dataclass
class RuleMatch:
    """Returned when a rule matches a canonical key."""

    tier: RuleTier
    pattern: str


def critical_delete_block(path: str) -> str | None:
    """Return the protected path if deleting *path* must always be refused."""
    candidate = path.strip()
    if _DRIVE_ROOT.match(candidate):
        return candidate
    folded = candidate.casefold()
    if len(folded) > 1 and folded[-1] in "/\\":
        trimmed = folded[:-1]
        if trimmed in _CRITICAL or _DRIVE_ROOT.match(trimmed):
            return candidate[:-1]
    if folded in _CRITICAL:
        return candidate
    return None


class RulePolicyStore:
    """Holds the active rule set and, optionally, the file it came from."""

    def __init__(
        self,
        path: str | os.PathLike | None = None,
        active_profiles: list[str] | tuple[str, ...] = (),
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._active_profiles = tuple(active_profiles)
        self._write_lock = threading.Lock()
        self._document = PermissionsDocument()
        self._rules = RuleSet()
        self._digest: str | None = None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def rules(self) -> RuleSet:
        return self._rules

    @property
    def document(self) -> PermissionsDocument:
        return self._document.model_copy(deep=True)

    @property
    def path(self) -> Path | None:
        return self._path

    def evaluate(self, key: str) -> RuleMatch | None:
        """Deny list first, then allow, then ask. First match wins."""
        rules = self._rules
        for tier in (RuleTier.DENY, RuleTier.ALLOW, RuleTier.ASK):
            pattern = first_match(key, rules.patterns(tier))
            if pattern is not None:
                return RuleMatch(tier=tier, pattern=pattern)
        return None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, source: RuleSource | None = None) -> None:
        """Replace all three lists from *source* (default: the backing file).

        Never raises: an unreadable or malformed source is logged and the
        built-in fallback rules are installed instead.
        """
        with self._write_lock:
            try:
                document, digest = self._read_source(source)
            except ConfigurationError as exc:
                logger.warning("%s; using built-in fallback rules", exc)
                self._install(
                    PermissionsDocument(permissions=PermissionRules(**FALLBACK_RULES)),
                    digest=None,
                    fallback=True,
                )
                return
            self._install(document, digest=digest)

    def reload(self) -> bool:
        """Re-read the backing file. Returns False if its content is unchanged."""
        if self._path is None:
            return False
        try:
            digest = hashlib.sha256(self._path.read_bytes()).hexdigest()
        except OSError:
            digest = None
        if digest is not None and digest == self._digest:
            return False
        self.load()
        return True

    def _read_source(self, source: RuleSource | None) -> tuple[PermissionsDocument, str | None]:
        if isinstance(source, PermissionsDocument):
            return source.model_copy(deep=True), None
        if isinstance(source, Mapping):
            return self._validate(dict(source), "<mapping>"), None
        if source is not None:
            self._path = Path(source)
        if self._path is None:
            raise ConfigurationError("<none>", "no permissions source configured")
        return self._read_file(self._path)

    def _read_file(self, path: Path) -> tuple[PermissionsDocument, str | None]:
        if not path.exists():
            logger.info("No permissions file at %s, writing defaults", path)
            document = self._validate(DEFAULT_DOCUMENT, str(path))
            digest = self._write_file(path, DEFAULT_DOCUMENT)
            return document, digest
        try:
            raw = path.read_bytes()
            data = json.loads(raw)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(str(path), str(exc)) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(str(path), "top level must be a JSON object")
        return self._validate(data, str(path)), hashlib.sha256(raw).hexdigest()

    @staticmethod
    def _validate(data: dict[str, Any], source: str) -> PermissionsDocument:
        try:
            return PermissionsDocument.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(source, str(exc)) from exc

    def _install(
        self, document: PermissionsDocument, digest: str | None, fallback: bool = False
    ) -> None:
        effective = document.effective_rules(self._active_profiles)
        self._document = document
        self._digest = digest
        self._rules = RuleSet.from_rules(effective, version=self._rules.version + 1, fallback=fallback)
        logger.info(
            "Loaded rule set v%d: %d deny, %d allow, %d ask%s",
            self._rules.version,
            len(self._rules.deny),
            len(self._rules.allow),
            len(self._rules.ask),
            " (fallback)" if fallback else "",
        )

    # ------------------------------------------------------------------
    # Mutation and persistence
    # ------------------------------------------------------------------

    def add_rule(self, tier: RuleTier, pattern: str, persist: bool = True) -> None:
        """Append *pattern* to the base *tier* list, then optionally persist."""
        with self._write_lock:
            document = self._document.model_copy(deep=True)
            base = document.permissions.tier(tier)
            if pattern not in base:
                base.append(pattern)
            self._install(document, digest=self._digest, fallback=self._rules.fallback)
            if persist:
                self._persist_locked()

    def save(self) -> None:
        """Write the base lists back to the backing file."""
        with self._write_lock:
            self._persist_locked()

    def _persist_locked(self) -> None:
        if self._path is None:
            return
        if self._rules.fallback:
            logger.warning(
                "Not writing %s: the file on disk could not be parsed; fix it to persist rules",
                self._path,
            )
            return
        data: dict[str, Any] = {}
        try:
            existing = json.loads(self._path.read_text())
            if isinstance(existing, dict):
                data = existing
        except (OSError, ValueError):
            pass
        data["permissions"] = self._document.permissions.model_dump()
        if self._document.profiles or "profiles" in data:
            data["profiles"] = {
                name: rules.model_dump() for name, rules in self._document.profiles.items()
            }
        self._digest = self._write_file(self._path, data)

    @staticmethod
    def _write_file(path: Path, data: Mapping[str, Any]) -> str:
        payload = (json.dumps(data, indent=2, ensure_ascii=False) + "\n").encode()
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return hashlib.sha256(payload).hexdigest()


class _PermissionsFileHandler(FileSystemEventHandler):
    def __init__(self, target: Path, on_change: Callable[[], None]) -> None:
        self._target = target
        self._on_change = on_change

    def _is_target(self, event: FileSystemEvent) -> bool:
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(p and Path(os.fsdecode(p)).resolve() == self._target for p in paths)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("modified", "created", "moved"):
            return
        if self._is_target(event):
            try:
                self._on_change()
            except Exception:
                logger.exception("Reloading %s failed", self._target)


class RuleFileWatcher:
    """Calls *on_change* whenever the permissions file is written."""

    def __init__(self, path: str | os.PathLike, on_change: Callable[[], None]) -> None:
        self._path = Path(path).resolve()
        self._on_change = on_change
        self._observer: Observer | None = None

    def start(self) -> None:
        if self._observer is not None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        observer = Observer()
        observer.schedule(
            _PermissionsFileHandler(self._path, self._on_change),
            str(self._path.parent),
            recursive=False,
        )
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s for changes", self._path)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
