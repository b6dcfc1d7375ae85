"""
Property-based tests for tumbling-window aggregation.

Properties:
- Counters match the recorded outcomes exactly
- The latency buffer holds the most recent samples, never more than the cap
- p95 is a recorded sample with at least 95% of samples at or below it
- Evaluation never breaches at or under the thresholds
"""

import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from rolloutguard.contracts.models import StopLossConfig, WindowSnapshot, percentile_nearest_rank
from rolloutguard.deploy.stop_loss import ThresholdEvaluator
from rolloutguard.deploy.window_metrics import WindowMetricsAggregator
from rolloutguard.observability.logger import ObservabilityLogger
from rolloutguard.utils.time_provider import FakeTimeProvider

outcomes = st.lists(
    st.tuples(st.booleans(), st.floats(min_value=0, max_value=60_000, allow_nan=False)),
    min_size=1,
    max_size=300,
)


def _aggregator(max_samples=1000):
    return WindowMetricsAggregator(
        window_ms=300_000,
        max_samples=max_samples,
        time_provider=FakeTimeProvider(start_time=1_700_000_000.0),
        observability_logger=ObservabilityLogger(
            logger_name="rolloutguard_property_events", console_output=False
        ),
    )


@pytest.mark.property
class TestWindowProperties:
    @settings(max_examples=100, deadline=None)
    @given(records=outcomes)
    def test_counters_match_records(self, records):
        aggregator = _aggregator()
        for success, latency in records:
            snapshot = aggregator.record("checkout", success, latency)

        failures = sum(1 for success, _ in records if not success)
        assert snapshot.request_count == len(records)
        assert snapshot.error_count == failures
        assert 0.0 <= snapshot.error_rate <= 1.0
        assert snapshot.error_count <= snapshot.request_count

    @settings(max_examples=100, deadline=None)
    @given(records=outcomes, cap=st.integers(min_value=1, max_value=50))
    def test_buffer_keeps_most_recent(self, records, cap):
        aggregator = _aggregator(max_samples=cap)
        for success, latency in records:
            snapshot = aggregator.record("checkout", success, latency)

        expected = tuple(float(latency) for _, latency in records)[-cap:]
        assert snapshot.latency_samples == expected
        assert len(snapshot.latency_samples) <= cap

    @settings(max_examples=200, deadline=None)
    @given(samples=st.lists(st.floats(min_value=0, max_value=1e6, allow_nan=False), min_size=1, max_size=500))
    def test_p95_is_nearest_rank(self, samples):
        p95 = percentile_nearest_rank(samples, 0.95)
        assert p95 in samples
        at_or_below = sum(1 for s in samples if s <= p95)
        assert at_or_below >= min(math.floor(len(samples) * 0.95) + 1, len(samples))

    @settings(max_examples=200, deadline=None)
    @given(
        requests=st.integers(min_value=1, max_value=10_000),
        error_fraction=st.floats(min_value=0, max_value=1),
        threshold=st.floats(min_value=0, max_value=1),
    )
    def test_no_error_breach_at_or_under_threshold(self, requests, error_fraction, threshold):
        errors = int(requests * error_fraction)
        snapshot = WindowSnapshot("checkout", requests, errors, (), 0)
        breach = ThresholdEvaluator().evaluate(
            snapshot, StopLossConfig(error_rate_threshold=threshold)
        )
        if errors / requests <= threshold:
            assert breach is None
        else:
            assert breach is not None
            assert breach.measured > breach.threshold
