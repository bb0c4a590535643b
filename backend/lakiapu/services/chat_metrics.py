"""In-process counters for chat message outcomes"""
import threading
import time
from collections import Counter
from datetime import datetime
from enum import Enum


class ChatOutcome(str, Enum):
    ANSWERED = "answered"
    FALLBACK = "fallback"  # answered, but the model output had to be replaced
    REJECTED = "rejected"  # 4xx: bad input, missing session, rate limit
    UPSTREAM_FAILED = "upstream_failed"  # 502 from retrieval or generation
    FAILED = "failed"

    @classmethod
    def for_status(cls, status_code: int) -> "ChatOutcome":
        if 400 <= status_code < 500:
            return cls.REJECTED
        if status_code == 502:
            return cls.UPSTREAM_FAILED
        return cls.FAILED


class ChatMetrics:
    """Outcome counts and answer latency of chat messages since start-up"""

    def __init__(self) -> None:
        self.started_at: float = float(time.time())
        self._outcomes: Counter[ChatOutcome] = Counter()
        self._error_codes: Counter[str] = Counter()
        self._in_flight: int = 0
        self._latency_total_ms: int = 0
        self._latency_max_ms: int = 0
        self._lock: threading.Lock = threading.Lock()

    def record_request(self) -> None:
        with self._lock:
            self._in_flight += 1

    def record_answer(self, *, processing_ms: int, fallback: bool = False) -> None:
        ms = max(0, int(processing_ms))
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            self._outcomes[ChatOutcome.FALLBACK if fallback else ChatOutcome.ANSWERED] += 1
            self._latency_total_ms += ms
            self._latency_max_ms = max(self._latency_max_ms, ms)

    def record_failure(self, *, error_code: str, status_code: int) -> None:
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            self._outcomes[ChatOutcome.for_status(int(status_code))] += 1
            self._error_codes[str(error_code)] += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            outcomes = {o.value: int(self._outcomes[o]) for o in ChatOutcome}
            completed = outcomes[ChatOutcome.ANSWERED.value] + outcomes[ChatOutcome.FALLBACK.value]
            errors = sum(self._error_codes.values())
            return {
                "started_at_iso": datetime.fromtimestamp(self.started_at).isoformat(),
                "requests_total": completed + errors + self._in_flight,
                "in_flight": self._in_flight,
                "completed_total": completed,
                "errors_total": errors,
                "outcomes": outcomes,
                "latency_ms": {
                    "avg": (round(self._latency_total_ms / completed, 1) if completed else None),
                    "max": self._latency_max_ms,
                },
                "top_error_codes": [
                    {"error_code": code, "count": count} for code, count in self._error_codes.most_common(10)
                ],
            }
