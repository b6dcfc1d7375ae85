"""Tests for the tumbling-window aggregator.

Tests cover:
- Counting and latency sampling
- Tumbling reset after the window length
- 1000-sample cap with FIFO eviction
- Isolation between rollouts
- Rollback claims
- Inspection, reset and idle sweep
"""

import math
import time

import pytest

from rolloutguard.deploy.window_metrics import WindowMetrics, WindowMetricsAggregator


class TestWindowMetrics:
    def test_defaults(self):
        window = WindowMetrics(window_start_ms=0)
        assert window.request_count == 0
        assert window.error_count == 0
        assert window.error_rate == 0.0
        assert window.p95_latency_ms is None
        assert window.latency_samples.maxlen == 1000


class TestRecord:
    def test_counts_requests_and_errors(self, aggregator):
        aggregator.record("checkout", success=True, latency_ms=100)
        aggregator.record("checkout", success=False, latency_ms=200)
        snapshot = aggregator.record("checkout", success=True)

        assert snapshot.request_count == 3
        assert snapshot.error_count == 1
        assert snapshot.latency_samples == (100.0, 200.0)
        assert snapshot.error_rate == pytest.approx(1 / 3)

    def test_snapshot_includes_own_update(self, aggregator):
        snapshot = aggregator.record("checkout", success=False, latency_ms=50)
        assert snapshot.request_count == 1
        assert snapshot.error_count == 1

    def test_window_starts_at_first_record(self, aggregator, fake_clock):
        snapshot = aggregator.record("checkout", success=True)
        assert snapshot.window_start_ms == fake_clock.now_ms()

    @pytest.mark.parametrize("bad", [-1, math.nan, math.inf, "slow"])
    def test_invalid_latency_ignored(self, aggregator, bad):
        snapshot = aggregator.record("checkout", success=True, latency_ms=bad)
        assert snapshot.request_count == 1
        assert snapshot.latency_samples == ()

    def test_zero_latency_kept(self, aggregator):
        assert aggregator.record("checkout", True, 0).latency_samples == (0.0,)


class TestTumblingReset:
    def test_same_window_at_boundary(self, aggregator, fake_clock):
        first = aggregator.record("checkout", success=False)
        fake_clock.advance_ms(300_000)
        second = aggregator.record("checkout", success=True)

        assert second.window_start_ms == first.window_start_ms
        assert second.request_count == 2

    def test_fresh_window_after_length(self, aggregator, fake_clock):
        for _ in range(10):
            aggregator.record("checkout", success=False, latency_ms=900)

        fake_clock.advance_ms(300_001)
        snapshot = aggregator.record("checkout", success=True, latency_ms=10)

        assert snapshot.request_count == 1
        assert snapshot.error_count == 0
        assert snapshot.latency_samples == (10.0,)
        assert snapshot.window_start_ms == fake_clock.now_ms()


class TestSampleCap:
    def test_keeps_most_recent_thousand(self, aggregator):
        for i in range(1500):
            snapshot = aggregator.record("checkout", success=True, latency_ms=i)

        assert snapshot.request_count == 1500
        assert len(snapshot.latency_samples) == 1000
        assert snapshot.latency_samples == tuple(float(i) for i in range(500, 1500))

    def test_custom_cap(self, fake_clock, events):
        aggregator = WindowMetricsAggregator(
            max_samples=3, time_provider=fake_clock, observability_logger=events
        )
        for latency in (1, 2, 3, 4, 5):
            snapshot = aggregator.record("checkout", True, latency)
        assert snapshot.latency_samples == (3.0, 4.0, 5.0)


class TestIsolation:
    def test_rollouts_do_not_share_windows(self, aggregator):
        for _ in range(20):
            aggregator.record("checkout", success=False, latency_ms=5000)
        aggregator.record("search", success=True, latency_ms=10)

        assert aggregator.error_rate("search") == 0.0
        assert aggregator.p95_latency("search") == 10.0
        assert aggregator.error_rate("checkout") == 1.0
        assert aggregator.snapshot("search").request_count == 1


class TestClaimRollback:
    def test_first_claim_wins(self, aggregator):
        start = aggregator.record("checkout", False).window_start_ms
        assert aggregator.claim_rollback("checkout", start, "error_rate_exceeded") is True
        assert aggregator.claim_rollback("checkout", start, "error_rate_exceeded") is False

    def test_different_reason_claims_separately(self, aggregator):
        start = aggregator.record("checkout", False).window_start_ms
        assert aggregator.claim_rollback("checkout", start, "error_rate_exceeded")
        assert aggregator.claim_rollback("checkout", start, "latency_exceeded")

    def test_new_window_can_be_claimed(self, aggregator, fake_clock):
        first = aggregator.record("checkout", False).window_start_ms
        assert aggregator.claim_rollback("checkout", first, "error_rate_exceeded")

        fake_clock.advance_ms(300_001)
        second = aggregator.record("checkout", False).window_start_ms
        assert second != first
        assert aggregator.claim_rollback("checkout", second, "error_rate_exceeded")

    def test_claims_are_per_rollout(self, aggregator):
        assert aggregator.claim_rollback("checkout", 0, "error_rate_exceeded")
        assert aggregator.claim_rollback("search", 0, "error_rate_exceeded")


class TestInspection:
    def test_unknown_rollout(self, aggregator):
        assert aggregator.snapshot("checkout") is None
        assert aggregator.error_rate("checkout") == 0.0
        assert aggregator.p95_latency("checkout") is None

    def test_reset(self, aggregator, caplog):
        aggregator.record("checkout", False)
        assert aggregator.reset("checkout") is True
        assert aggregator.snapshot("checkout") is None
        assert aggregator.reset("checkout") is False
        assert any(getattr(r, "event_type", None) == "window_reset" for r in caplog.records)

    def test_rollout_ids(self, aggregator):
        aggregator.record("checkout", True)
        aggregator.record("search", True)
        assert sorted(aggregator.rollout_ids()) == ["checkout", "search"]


class TestSweep:
    def test_removes_only_old_windows(self, aggregator, fake_clock):
        aggregator.record("old", True)
        fake_clock.advance_ms(400_000)
        aggregator.record("recent", True)
        fake_clock.advance_ms(200_001)

        # "old" started 600_001 ms ago (> 2 windows), "recent" 200_001 ms ago
        assert aggregator.sweep_idle() == 1
        assert aggregator.rollout_ids() == ["recent"]

    def test_nothing_to_sweep(self, aggregator):
        aggregator.record("checkout", True)
        assert aggregator.sweep_idle() == 0

    def test_recording_after_sweep(self, aggregator, fake_clock):
        aggregator.record("checkout", False)
        fake_clock.advance_ms(600_001)
        aggregator.sweep_idle()

        snapshot = aggregator.record("checkout", True)
        assert snapshot.request_count == 1

    def test_sweeper_thread_lifecycle(self, events):
        aggregator = WindowMetricsAggregator(window_ms=1, observability_logger=events)
        aggregator.record("checkout", True)

        aggregator.start_sweeper(interval_s=0.01)
        try:
            assert aggregator.sweeper_running
            deadline = time.monotonic() + 2.0
            while aggregator.rollout_ids() and time.monotonic() < deadline:
                time.sleep(0.01)
            assert aggregator.rollout_ids() == []
        finally:
            aggregator.stop_sweeper()
        assert not aggregator.sweeper_running

    def test_sweeper_interval_must_be_positive(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.start_sweeper(interval_s=0)


@pytest.mark.parametrize(("window_ms", "max_samples"), [(0, 10), (-5, 10), (10, 0)])
def test_invalid_construction(window_ms, max_samples):
    with pytest.raises(ValueError):
        WindowMetricsAggregator(window_ms=window_ms, max_samples=max_samples)
