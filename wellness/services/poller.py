"""
Cancellable fixed-interval poller for dashboard notifications.
"""

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class NotificationPoller:
    """
    Calls ``fetch`` every ``interval`` seconds on a background thread and
    hands each result to ``on_result``.

    A failing tick is logged and the poll continues. ``cancel()`` stops the
    thread and waits for it, so no timer outlives its owner::

        with NotificationPoller(lambda: api.get_records('notifications'), 30, render):
            ...
    """

    def __init__(
        self,
        fetch: Callable[[], Any],
        interval: float = 30,
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        run_immediately: bool = True,
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.fetch = fetch
        self.interval = interval
        self.on_result = on_result
        self.on_error = on_error
        self.run_immediately = run_immediately
        self.ticks = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config, fetch, on_result=None, on_error=None) -> 'NotificationPoller':
        """Poller running every ``NOTIFICATION_POLL_INTERVAL`` seconds."""
        return cls(fetch, config.get('NOTIFICATION_POLL_INTERVAL', 30), on_result, on_error)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> 'NotificationPoller':
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='notification-poller', daemon=True)
        self._thread.start()
        logger.debug(f"[POLL] Started, every {self.interval}s")
        return self

    def cancel(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.debug("[POLL] Cancelled")

    def tick(self) -> None:
        """Run one fetch now; errors from the fetch or the callbacks are logged."""
        self.ticks += 1
        try:
            result = self.fetch()
        except Exception as e:
            logger.warning(f"[POLL] Fetch failed: {e}")
            self._call(self.on_error, e)
            return
        self._call(self.on_result, result)

    def _call(self, callback, arg) -> None:
        if callback is None:
            return
        try:
            callback(arg)
        except Exception as e:
            logger.exception(f"[POLL] Callback failed: {e}")

    def _loop(self) -> None:
        if self.run_immediately and not self._stop.is_set():
            self.tick()
        while not self._stop.wait(self.interval):
            self.tick()

    def __enter__(self) -> 'NotificationPoller':
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()
