# src/rtodo/telemetry.py

"""Tiny latency recorder: keeps recent samples per operation and logs p95 periodically."""

from __future__ import annotations

import contextlib
import logging
import time
from collections import deque
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

MAX_SAMPLES = 200


def percentile(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    idx = min(len(ordered) - 1, int((p / 100.0) * len(ordered)))
    return ordered[idx]


class LatencyRecorder:
    def __init__(self, *, log_every: int = 20, max_samples: int = MAX_SAMPLES) -> None:
        self._log_every = max(1, int(log_every))
        self._max_samples = max(1, int(max_samples))
        self._samples: dict[str, deque[float]] = {}
        self._counts: dict[str, int] = {}

    def record(self, name: str, ms: float) -> None:
        samples = self._samples.setdefault(name, deque(maxlen=self._max_samples))
        samples.append(float(ms))
        self._counts[name] = self._counts.get(name, 0) + 1
        if self._counts[name] % self._log_every == 0:
            logger.info(
                "[telemetry] %s: p95=%.1fms over %d samples",
                name,
                self.p95(name),
                len(samples),
            )

    def p95(self, name: str) -> float:
        return percentile(list(self._samples.get(name, ())), 95)

    def count(self, name: str) -> int:
        return self._counts.get(name, 0)

    @contextlib.asynccontextmanager
    async def measure(self, name: str) -> AsyncIterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - start) * 1000.0)
