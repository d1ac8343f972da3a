"""
Latency measurement for LLM, embedding, research and pass execution.
"""
import time
from typing import Optional


class Timer:
    """
    Monotonic stopwatch in milliseconds.

    `mark_first()` records time-to-first-chunk for streaming passes; later
    calls are ignored so only the first chunk counts.
    """

    def __init__(self):
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._first_at: Optional[float] = None

    def start(self) -> "Timer":
        self._started_at = time.monotonic()
        self._stopped_at = None
        self._first_at = None
        return self

    def mark_first(self) -> None:
        if self._started_at is not None and self._first_at is None:
            self._first_at = time.monotonic()

    def stop(self) -> int:
        self._stopped_at = time.monotonic()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> int:
        if self._started_at is None:
            return 0
        until = self._stopped_at if self._stopped_at is not None else time.monotonic()
        return int((until - self._started_at) * 1000)

    @property
    def first_chunk_ms(self) -> Optional[int]:
        if self._started_at is None or self._first_at is None:
            return None
        return int((self._first_at - self._started_at) * 1000)

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()
