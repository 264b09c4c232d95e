"""Rate-limited logging helpers."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable


class ThrottledLogger:
    """Emit a log record at most once per period for each key.

    Wraps a standard ``logging.Logger``. Records suppressed inside the
    period are dropped, not queued.

    Example:
        >>> throttled = ThrottledLogger(logging.getLogger(__name__), period=10.0)
        >>> throttled.warning("tf:base_link:cam0", "transform missing")
    """

    def __init__(
        self,
        logger: logging.Logger,
        period: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logger
        self._period = float(period)
        self._clock = clock
        self._last_emit: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def period(self) -> float:
        return self._period

    def should_emit(self, key: str) -> bool:
        """Return True (and record the emission) if ``key`` is due."""
        now = self._clock()
        with self._lock:
            last = self._last_emit.get(key)
            if last is not None and now - last < self._period:
                return False
            self._last_emit[key] = now
            return True

    def log(self, level: int, key: str, msg: str, *args) -> bool:
        """Log ``msg`` at ``level`` unless ``key`` was logged within the period.

        Returns:
            True if the record was emitted
        """
        if not self.should_emit(key):
            return False
        self._logger.log(level, msg, *args)
        return True

    def warning(self, key: str, msg: str, *args) -> bool:
        return self.log(logging.WARNING, key, msg, *args)

    def error(self, key: str, msg: str, *args) -> bool:
        return self.log(logging.ERROR, key, msg, *args)

    def reset(self) -> None:
        """Forget all emission times."""
        with self._lock:
            self._last_emit.clear()
