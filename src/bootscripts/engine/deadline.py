"""Deadline state for the governed phase.

Tracks the one blocking deadline a host process gets for its governed
phase, and whether that deadline has already passed.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional


class OverlappingPhaseError(RuntimeError):
    """Raised when two governed invocations try to use the deadline at once."""

    pass


class RunState(Enum):
    """Where a single phase invocation stands with respect to the deadline.

    ungoverned: Fire-and-forget, no watchdog
    governed_fresh: Deadline established, nothing raced yet
    governed_racing: Watchdog running against blocking scripts
    governed_expired: Deadline passed, remaining work is fire-and-forget
    """

    UNGOVERNED = "ungoverned"
    GOVERNED_FRESH = "governed_fresh"
    GOVERNED_RACING = "governed_racing"
    GOVERNED_EXPIRED = "governed_expired"


@dataclass
class DeadlineState:
    """Process-lifetime deadline for the governed phase.

    Created once by the host and passed to every runner that may see the
    governed phase. Only ensure_initialized(), is_expired() and
    mark_expired() write to it.

    - deadline: Absolute monotonic time, None until the first governed call
    - expired: Latches to True and never goes back
    """

    clock: Callable[[], float] = time.monotonic
    deadline: Optional[float] = None
    expired: bool = False
    _claim: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def initialized(self) -> bool:
        return self.deadline is not None

    def ensure_initialized(self, now: float, max_duration: float) -> float:
        """Establish the deadline on first use and return it.

        Later calls keep the original deadline so every invocation of the
        governed phase shares one window.
        """
        if self.deadline is None:
            self.deadline = now + max_duration
        return self.deadline

    def is_expired(self, now: float) -> bool:
        """Return True if the deadline was marked expired or has passed.

        A passed deadline is latched here, so callers need not mark it.
        """
        if self.expired:
            return True
        if self.deadline is not None and now > self.deadline:
            self.expired = True
        return self.expired

    def mark_expired(self) -> None:
        self.expired = True

    @contextmanager
    def claim(self) -> Iterator["DeadlineState"]:
        """Hold the state for one governed invocation.

        Governed invocations are issued one after another by the host,
        never concurrently. An overlapping claim breaks that contract and
        raises instead of waiting.
        """
        if not self._claim.acquire(blocking=False):
            raise OverlappingPhaseError(
                "governed phase invocations must not overlap; "
                "the previous invocation has not returned yet"
            )
        try:
            yield self
        finally:
            self._claim.release()
