from gemini_relay.metrics import MetricsAggregator, StreamSummary


def _sample(outcome="completed", ttft_ms=10.0, model="gemini-2.5-flash"):
    return StreamSummary(
        ts=0.0,
        model=model,
        outcome=outcome,
        status_code=200,
        chunks=2,
        lines=3,
        text_events=2,
        error_events=0 if outcome == "completed" else 1,
        ttft_ms=ttft_ms,
        duration_ms=50.0,
    )


def test_empty_summary():
    summary = MetricsAggregator().summary()
    assert summary["rolling"] == {"count": 0}


def test_summary_aggregates_samples():
    metrics = MetricsAggregator()
    metrics.add(_sample(ttft_ms=10.0))
    metrics.add(_sample(ttft_ms=30.0))
    metrics.add(_sample(outcome="aborted", ttft_ms=None))

    summary = metrics.summary()

    assert summary["rolling"]["count"] == 3
    assert summary["rolling"]["avg_ttft_ms"] == 20.0
    assert summary["rolling"]["error_events"] == 1
    counters = summary["streams_by_model"]["gemini-2.5-flash"]
    assert counters["total_streams"] == 3
    assert counters["completed"] == 2
    assert counters["aborted"] == 1


def test_capacity_bounds_samples():
    metrics = MetricsAggregator(capacity=2)
    for _ in range(5):
        metrics.add(_sample())
    assert len(metrics.samples) == 2
    assert metrics.model_counters["gemini-2.5-flash"]["total_streams"] == 5
