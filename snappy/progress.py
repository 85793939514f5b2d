"""Progress reporting sinks used around downloads."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ProgressSink(Protocol):
    def start(self, label: str, total: int | None) -> None: ...

    def update(self, current: int) -> None: ...

    def finish(self) -> None: ...


class NullProgress:
    """Discards every progress event."""

    def start(self, label: str, total: int | None) -> None:
        return None

    def update(self, current: int) -> None:
        return None

    def finish(self) -> None:
        return None


class LoggingProgress:
    """Reports progress through the logger at coarse percentage steps."""

    def __init__(self, step_percent: int = 25) -> None:
        self._step = max(1, step_percent)
        self._label = ""
        self._total: int | None = None
        self._next_mark = 0
        self._current = 0

    def start(self, label: str, total: int | None) -> None:
        self._label = label
        self._total = total if total and total > 0 else None
        self._next_mark = self._step
        self._current = 0
        LOGGER.info("Starting %s (%s bytes)", label, total if total else "unknown")

    def update(self, current: int) -> None:
        self._current = current
        if self._total is None:
            return
        percent = current * 100 // self._total
        if percent >= self._next_mark and percent < 100:
            LOGGER.info("%s: %d%%", self._label, percent)
            while self._next_mark <= percent:
                self._next_mark += self._step

    def finish(self) -> None:
        LOGGER.info("Finished %s (%d bytes)", self._label, self._current)


__all__ = ["ProgressSink", "NullProgress", "LoggingProgress"]
