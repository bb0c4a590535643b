from lakiapu.services.chat_metrics import ChatMetrics, ChatOutcome


def test_outcome_for_status() -> None:
    assert ChatOutcome.for_status(400) is ChatOutcome.REJECTED
    assert ChatOutcome.for_status(429) is ChatOutcome.REJECTED
    assert ChatOutcome.for_status(502) is ChatOutcome.UPSTREAM_FAILED
    assert ChatOutcome.for_status(500) is ChatOutcome.FAILED


def test_snapshot_counts_outcomes_and_latency() -> None:
    metrics = ChatMetrics()
    for _ in range(5):
        metrics.record_request()
    metrics.record_answer(processing_ms=100)
    metrics.record_answer(processing_ms=300, fallback=True)
    metrics.record_failure(error_code="UPSTREAM_TIMEOUT", status_code=502)
    metrics.record_failure(error_code="UPSTREAM_TIMEOUT", status_code=502)

    snap = metrics.snapshot()

    assert snap["requests_total"] == 5
    assert snap["in_flight"] == 1
    assert snap["completed_total"] == 2
    assert snap["errors_total"] == 2
    assert snap["outcomes"] == {
        "answered": 1,
        "fallback": 1,
        "rejected": 0,
        "upstream_failed": 2,
        "failed": 0,
    }
    assert snap["latency_ms"] == {"avg": 200.0, "max": 300}
    assert snap["top_error_codes"] == [{"error_code": "UPSTREAM_TIMEOUT", "count": 2}]


def test_empty_snapshot() -> None:
    snap = ChatMetrics().snapshot()
    assert snap["requests_total"] == 0
    assert snap["latency_ms"] == {"avg": None, "max": 0}
    assert snap["top_error_codes"] == []
