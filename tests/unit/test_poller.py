"""
Unit tests for the notification poller.
"""

import threading
from unittest.mock import Mock

import pytest

from wellness.services.poller import NotificationPoller


class TestTick:
    """Tests for a single poll."""

    def test_result_delivered(self):
        results = []
        poller = NotificationPoller(lambda: ['n1'], interval=5, on_result=results.append)

        poller.tick()

        assert results == [['n1']]
        assert poller.ticks == 1

    def test_failure_reported_and_swallowed(self):
        errors = []

        def fetch():
            raise RuntimeError('offline')

        poller = NotificationPoller(fetch, interval=5, on_error=errors.append)
        poller.tick()
        poller.tick()

        assert [str(e) for e in errors] == ['offline', 'offline']
        assert poller.ticks == 2

    def test_failing_callbacks_are_logged(self, caplog):
        def render(result):
            raise RuntimeError('render failed')

        def report(error):
            raise RuntimeError('report failed')

        NotificationPoller(lambda: ['n1'], interval=5, on_result=render).tick()
        NotificationPoller(Mock(side_effect=OSError('offline')), interval=5, on_error=report).tick()

        assert caplog.text.count('[POLL] Callback failed') == 2

    def test_from_config(self):
        poller = NotificationPoller.from_config({'NOTIFICATION_POLL_INTERVAL': 12}, lambda: None)
        assert poller.interval == 12

    @pytest.mark.parametrize('interval', [0, -1])
    def test_invalid_interval(self, interval):
        with pytest.raises(ValueError):
            NotificationPoller(lambda: None, interval=interval)


class TestLifecycle:
    """Tests for start and cancel."""

    def test_runs_immediately_and_cancels(self):
        fetched = threading.Event()
        poller = NotificationPoller(lambda: fetched.set(), interval=60)

        poller.start()
        assert fetched.wait(2)
        poller.cancel(timeout=2)

        assert poller.running is False
        assert poller.ticks == 1

    def test_repeats_on_interval(self):
        done = threading.Event()
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) >= 3:
                done.set()

        with NotificationPoller(fetch, interval=0.01) as poller:
            assert done.wait(2)
            assert poller.running is True

        assert poller.running is False
        assert len(calls) >= 3

    def test_start_twice_keeps_one_thread(self):
        poller = NotificationPoller(lambda: None, interval=60, run_immediately=False)
        poller.start()
        thread = poller._thread
        poller.start()

        assert poller._thread is thread
        poller.cancel(timeout=2)
        assert poller.ticks == 0

    def test_cancel_without_start(self):
        poller = NotificationPoller(lambda: None, interval=1)
        poller.cancel()
        assert poller.running is False

    def test_failing_result_callback_keeps_polling(self):
        done = threading.Event()
        calls = []

        def render(result):
            calls.append(result)
            if len(calls) >= 3:
                done.set()
            raise RuntimeError('render failed')

        with NotificationPoller(lambda: 'n', interval=0.01, on_result=render) as poller:
            assert done.wait(2)
            assert poller.running is True

        assert len(calls) >= 3
