"""Per-tool invocation caps over a fixed 60-second counting window."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from warden.engine.keys import canonical_tool_name

DEFAULT_LIMITS: dict[str, int] = {
    "Bash": 30,
    "Write": 50,
    "Edit": 100,
    "Read": 200,
    "Delete": 10,
}


@dataclass
class RateWindow:
    count: int
    window_start: float


class ToolRateLimiter:
    """Counts invocations per tool name, not per exact operation.

    Args:
        limits: Per-minute cap by tool name.
        default_limit: Cap for tools not in *limits*.
        window: Window length in seconds.
        clock: Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        limits: Mapping[str, int] | None = None,
        default_limit: int = 50,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        source = DEFAULT_LIMITS if limits is None else limits
        self.limits = {canonical_tool_name(name): cap for name, cap in source.items()}
        self.default_limit = default_limit
        self.window = window
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def limit_for(self, tool_name: str) -> int:
        return self.limits.get(tool_name, self.default_limit)

    def try_acquire(self, tool_name: str) -> bool:
        """Count one invocation. False (and no count) if the cap is reached."""
        now = self._clock()
        cap = self.limit_for(tool_name)
        with self._lock:
            state = self._windows.get(tool_name)
            if state is None:
                state = self._windows[tool_name] = RateWindow(count=0, window_start=now)
            if now - state.window_start > self.window:
                state.count = 0
                state.window_start = now
            if state.count >= cap:
                return False
            state.count += 1
            return True

    def snapshot(self) -> dict[str, RateWindow]:
        with self._lock:
            return {
                name: RateWindow(count=w.count, window_start=w.window_start)
                for name, w in self._windows.items()
            }
