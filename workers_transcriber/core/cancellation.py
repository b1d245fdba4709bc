"""One-shot cancellation token shared by the orchestrator and the transport.

WHY: A run can be stopped by the user at any moment: from a Ctrl-C
handler in the CLI, or from an HTTP request handler in the job server
while the run itself executes in a background thread. The orchestrator
checks the token between chunks; the transport needs to be woken up
while a request is in flight.

HOW: A threading.Event records the state. Callbacks registered with
add_callback() run exactly once, on the thread that calls cancel(), or
immediately if the token is already cancelled. The transport uses a
callback to cancel its in-flight request task on its own event loop.

RULES:
- State goes from active to cancelled once and never reverts
- cancel() is idempotent; callbacks fire on the first call only
- Callbacks must be cheap and must not raise
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List

from workers_transcriber.errors import TranscriptionCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe one-shot cancellation signal for a single run."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Signal cancellation.

        Returns:
            True if this call cancelled the token, False if it was
            already cancelled.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")
        return True

    def raise_if_cancelled(self) -> None:
        """Raise TranscriptionCancelled if the token has been cancelled."""
        if self._event.is_set():
            raise TranscriptionCancelled()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, or right away if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

