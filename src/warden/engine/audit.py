"""Append-only audit trail of every terminal decision.

Entries go to one or more sinks as newline-delimited JSON. A failing sink is
reported through the ``warden.audit`` logger and never affects the decision
being returned.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import IO, Protocol

from warden.exceptions import AuditWriteFailure
from warden.schemas.audit import AuditEntry

logger = logging.getLogger("warden.audit")


class AuditSink(Protocol):
    def write(self, entry: AuditEntry) -> None: ...


class JsonlAuditSink:
    """Appends one JSON object per line to a file."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def write(self, entry: AuditEntry) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(entry.to_json_line())
        except OSError as exc:
            raise AuditWriteFailure(f"cannot append to {self.path}: {exc}") from exc


class StreamAuditSink:
    """Writes JSON lines to an already-open text stream."""

    def __init__(self, stream: IO[str]) -> None:
        self._stream = stream

    def write(self, entry: AuditEntry) -> None:
        self._stream.write(entry.to_json_line())
        self._stream.flush()


class AuditTrail:
    def __init__(self, sinks: list[AuditSink] | None = None) -> None:
        self._sinks = list(sinks or [])
        self._lock = threading.Lock()
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def add_sink(self, sink: AuditSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._count += 1
            for sink in self._sinks:
                try:
                    sink.write(entry)
                except Exception:
                    logger.exception(
                        "Audit write failed for decision %s (%s %s)",
                        entry.decision.decision_id,
                        entry.decision.behavior.value,
                        entry.canonical_key,
                    )
