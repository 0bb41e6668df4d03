"""
api.responses - Helpers shared by the JSON envelopes of the price routes.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def error_message(exc: BaseException, fallback: str) -> str:
    """The exception's message, or ``fallback`` when it has none."""
    return str(exc) or fallback


class Stopwatch:
    """Elapsed wall time in whole milliseconds."""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)
