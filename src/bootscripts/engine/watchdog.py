# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""One-shot timer that bounds a blocking wait.

The watchdog only tells the runner that time is up. It never touches
the script being waited on.
"""

import threading
import time
from typing import Callable, Optional


class Watchdog:
    """Fires once at an absolute monotonic deadline, never before it."""

    def __init__(self, deadline: float, clock: Callable[[], float] = time.monotonic):
        self.deadline = deadline
        self.clock = clock
        self._fired = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def fired(self) -> bool:
        return self._fired.is_set()

    def remaining(self) -> float:
        """Seconds until the deadline, never negative."""
        return max(0.0, self.deadline - self.clock())

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("watchdog already started")
        self._thread = threading.Thread(target=self._count_down, name="phase-watchdog", daemon=True)
        self._thread.start()

    def _count_down(self) -> None:
        # Event.wait may return a little early; re-check against the clock
        while not self._stopped.is_set():
            remaining = self.deadline - self.clock()
            if remaining <= 0:
                self._fired.set()
                return
            self._stopped.wait(remaining)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the watchdog fires; return whether it did."""
        return self._fired.wait(timeout)

    def stop(self) -> None:
        """Cancel the timer if it has not fired yet. Safe to call twice."""
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
