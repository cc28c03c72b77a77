"""
=============================================================================
WORK GROUP
=============================================================================

Counts outstanding units of work (the accept loop plus one per live
connection) so a shutdown can block until every one of them has exited.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        WorkGroup Usage                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   controller.up()        work.add()      accept loop    count = 1   │
    │   accept()               work.add()      connection     count = 2   │
    │   connection closes      work.done()                    count = 1   │
    │   controller.down()      shutdown.set()                             │
    │                          work.wait()     ◄── blocks                 │
    │   accept loop exits      work.done()                    count = 0   │
    │                                          ──► wait() returns         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every method is safe to call from any thread.

=============================================================================
"""

import threading
from typing import Optional


class WorkGroup:
    """Thread-safe counter with a blocking wait for zero."""

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def add(self, delta: int = 1) -> None:
        """
        Adjust the counter by delta.

        Raises:
            ValueError: If the counter would drop below zero.
        """
        with self._cond:
            if self._count + delta < 0:
                raise ValueError("negative WorkGroup counter")
            self._count += delta
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        """Mark one unit of work finished."""
        self.add(-1)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the counter reaches zero.

        Args:
            timeout: Maximum time to wait in seconds. None = wait forever.

        Returns:
            True if the counter reached zero, False on timeout.
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)

    def __repr__(self) -> str:
        return f"WorkGroup(count={self.count})"
