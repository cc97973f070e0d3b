"""Main-thread relay -- hands work from background threads to the host thread.

The callback server runs on a background thread, but token exchange and
the host's success/error events must run on the host's primary thread.
Background code :meth:`~MainThreadRelay.enqueue`\\ s zero-argument
callables; the host calls :meth:`~MainThreadRelay.drain` once per loop
iteration and they run there, in order.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class MainThreadRelay:
    """FIFO queue of callables executed on whichever thread drains it.

    A single lock guards the queue only while items are added or taken out;
    callables always run with the lock released, so a callable may itself
    enqueue more work (it runs on the next drain).

    Example::

        relay = MainThreadRelay()
        relay.enqueue(lambda: print("hello from the host thread"))
        relay.drain()   # prints, returns 1
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queue: deque[Callback] = deque()

    def enqueue(self, callback: Callback) -> None:
        """Schedule *callback* for the next :meth:`drain`. Safe from any thread."""
        with self._lock:
            self._queue.append(callback)

    def drain(self) -> int:
        """Run every queued callable in enqueue order and return how many ran.

        Returns immediately with ``0`` when the queue is empty. If a
        callable raises, the ones not yet run go back to the front of the
        queue and the exception propagates to the caller.
        """
        with self._lock:
            if not self._queue:
                return 0
            batch = list(self._queue)
            self._queue.clear()

        for index, callback in enumerate(batch):
            try:
                callback()
            except BaseException:
                remaining = batch[index + 1:]
                if remaining:
                    with self._lock:
                        self._queue.extendleft(reversed(remaining))
                raise
        return len(batch)

    def clear(self) -> None:
        """Drop every pending callable without running it."""
        with self._lock:
            dropped = len(self._queue)
            self._queue.clear()
        if dropped:
            logger.debug("Discarded %d pending relay callbacks", dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)
