from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from typing import Deque, Dict, Optional


@dataclass
class StreamSummary:
    ts: float
    model: str
    outcome: str  # completed | rejected | aborted | disconnected
    status_code: Optional[int]
    chunks: int
    lines: int
    text_events: int
    error_events: int
    ttft_ms: Optional[float]
    duration_ms: float

    def to_record(self) -> dict:
        return asdict(self)


class MetricsAggregator:
    def __init__(self, capacity: int = 500):
        self.capacity = capacity
        self.samples: Deque[StreamSummary] = deque(maxlen=capacity)
        self.start_ts = time.time()
        self.model_counters: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {
                "total_streams": 0,
                "completed": 0,
                "rejected": 0,
                "aborted": 0,
                "disconnected": 0,
            }
        )

    def add(self, sample: StreamSummary):
        self.samples.append(sample)
        counters = self.model_counters[sample.model]
        counters["total_streams"] += 1
        if sample.outcome in counters:
            counters[sample.outcome] += 1

    def summary(self) -> dict:
        if not self.samples:
            return {
                "uptime_seconds": time.time() - self.start_ts,
                "rolling": {"count": 0},
                "streams_by_model": self.model_counters,
            }
        ttfts = sorted(s.ttft_ms for s in self.samples if s.ttft_ms is not None)
        durations = [s.duration_ms for s in self.samples]
        p95 = ttfts[int(0.95 * (len(ttfts) - 1))] if ttfts else None
        return {
            "uptime_seconds": time.time() - self.start_ts,
            "rolling": {
                "count": len(self.samples),
                "avg_ttft_ms": (sum(ttfts) / len(ttfts)) if ttfts else None,
                "p95_ttft_ms": p95,
                "avg_duration_ms": sum(durations) / len(durations),
                "text_events": sum(s.text_events for s in self.samples),
                "error_events": sum(s.error_events for s in self.samples),
            },
            "streams_by_model": self.model_counters,
        }
