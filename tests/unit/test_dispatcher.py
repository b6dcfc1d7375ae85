"""Tests for side-effect dispatch."""

import threading

import pytest

from rolloutguard.utils.dispatcher import InlineDispatcher, SideEffectDispatcher


class TestInlineDispatcher:
    def test_runs_immediately(self):
        calls = []
        assert InlineDispatcher().submit("audit", calls.append, "event")
        assert calls == ["event"]

    def test_failure_is_isolated(self, caplog):
        def explode():
            raise RuntimeError("sink down")

        assert InlineDispatcher().submit("audit", explode) is True
        assert "Side effect audit failed" in caplog.text


class TestSideEffectDispatcher:
    def test_runs_submitted_work(self):
        dispatcher = SideEffectDispatcher(max_queue=10)
        calls = []
        try:
            for i in range(5):
                assert dispatcher.submit("notify", calls.append, i)
            assert dispatcher.drain(timeout=5.0)
        finally:
            dispatcher.shutdown()
        assert calls == [0, 1, 2, 3, 4]

    def test_failures_counted_and_worker_survives(self):
        dispatcher = SideEffectDispatcher()
        calls = []

        def explode():
            raise ConnectionError("webhook unreachable")

        try:
            dispatcher.submit("notify", explode)
            dispatcher.submit("notify", calls.append, "after")
            assert dispatcher.drain(timeout=5.0)
        finally:
            dispatcher.shutdown()
        assert dispatcher.failed == 1
        assert calls == ["after"]

    def test_full_queue_drops_without_blocking(self, caplog):
        dispatcher = SideEffectDispatcher(max_queue=1)
        release = threading.Event()
        started = threading.Event()

        def block():
            started.set()
            release.wait(5.0)

        try:
            assert dispatcher.submit("audit", block)
            assert started.wait(5.0)
            assert dispatcher.submit("audit", lambda: None)
            assert dispatcher.submit("audit", lambda: None) is False
            assert dispatcher.dropped == 1
            assert "queue full" in caplog.text
        finally:
            release.set()
            dispatcher.shutdown()

    def test_drain_timeout_leaves_no_waiter_threads(self):
        dispatcher = SideEffectDispatcher()
        release = threading.Event()
        started = threading.Event()

        def block():
            started.set()
            release.wait(5.0)

        try:
            dispatcher.submit("notify", block)
            assert started.wait(5.0)
            before = threading.active_count()
            for _ in range(5):
                assert dispatcher.drain(timeout=0.01) is False
            assert threading.active_count() == before
        finally:
            release.set()
        assert dispatcher.drain(timeout=5.0) is True
        dispatcher.shutdown()

    def test_submit_after_shutdown_is_dropped(self):
        dispatcher = SideEffectDispatcher()
        dispatcher.shutdown()
        assert dispatcher.submit("notify", lambda: None) is False
        assert dispatcher.dropped == 1

    def test_shutdown_flushes_pending_work(self):
        dispatcher = SideEffectDispatcher(max_queue=100)
        calls = []
        for i in range(20):
            dispatcher.submit("audit", calls.append, i)
        dispatcher.shutdown(timeout=5.0)
        assert calls == list(range(20))

    def test_shutdown_is_idempotent(self):
        dispatcher = SideEffectDispatcher()
        dispatcher.shutdown()
        dispatcher.shutdown()

    @pytest.mark.parametrize(("max_queue", "workers"), [(0, 1), (10, 0)])
    def test_invalid_construction(self, max_queue, workers):
        with pytest.raises(ValueError):
            SideEffectDispatcher(max_queue=max_queue, workers=workers)
