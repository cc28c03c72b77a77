"""
=============================================================================
HEALTH-DRIVEN SUPERVISOR
=============================================================================

Turns health events into up()/down() calls on an EchoController and owns
the final shutdown.

=============================================================================
EVENT FLOW
=============================================================================

    ┌───────────────┐  True/False  ┌────────────┐  up()/down()  ┌────────────────┐
    │ HealthChecker │ ───────────► │ Supervisor │ ────────────► │ EchoController │
    │ (own thread)  │    queue     │ (run loop) │               │                │
    └───────────────┘              └────────────┘               └────────────────┘
            ▲                            ▲
            │ close()                    │ request_stop()
            └──────────── SIGINT / SIGTERM

Every up() and down() is made from the thread running run(), one at a
time, so the two never overlap.

=============================================================================
TERMINATION ORDER
=============================================================================

    1. request_stop()      Mark termination, close the event source
                           (later health results are dropped at the source)
    2. run loop wakes      request_stop() queues a wake-up marker;
                           anything still queued is ignored
    3. controller.down()   Exactly once, drains every connection
    4. source.join()       Let the checker thread finish

The source is closed before the final down(), so no health event can
bring the listener back up while the process is exiting.

=============================================================================
SIGNAL HANDLING
=============================================================================

SIGINT (2):   Ctrl+C in a terminal
SIGTERM (15): docker stop, systemd stop, kill <pid>

The handler only calls request_stop(). Python runs signal handlers on the
main thread between bytecodes, possibly in the middle of an up() or
down() on that same thread, so the handler must never call into the
controller itself.

=============================================================================
"""

import queue
import signal
import logging
import threading
from typing import Optional, Protocol

from .core import EchoController


logger = logging.getLogger(__name__)

# Put on the source queue by request_stop() to wake a blocked run loop
_WAKE = object()


class EventSource(Protocol):
    """What the supervisor needs from a health event producer."""

    events: "queue.SimpleQueue"

    def start(self): ...

    def close(self) -> None: ...

    def join(self, timeout: Optional[float] = None) -> bool: ...


class Supervisor:
    """
    Drives an EchoController from a stream of health events.

    Usage:
        supervisor = Supervisor(controller, HealthChecker(probe))
        supervisor.install_signal_handlers()
        try:
            supervisor.run()       # Blocks until SIGINT/SIGTERM
        finally:
            supervisor.restore_signal_handlers()
    """

    def __init__(
        self,
        controller: EchoController,
        source: EventSource,
        poll_interval: float = 1.0,
        join_timeout: float = 10.0,
    ):
        """
        Args:
            controller: The controller to drive.
            source: Producer of boolean health events.
            poll_interval: Longest the run loop blocks on an empty queue
                           before checking for a stop request again.
            join_timeout: How long to wait for the source thread on exit.
        """
        self.controller = controller
        self.source = source
        self.poll_interval = poll_interval
        self.join_timeout = join_timeout

        self._stopping = threading.Event()
        self._stopped = threading.Event()
        self._original_handlers: dict = {}

        self.events_handled = 0
        self.events_dropped = 0

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def request_stop(self, reason: str = "stop requested") -> None:
        """
        Begin termination. Safe from signal handlers and other threads,
        and safe to call more than once.
        """
        if self._stopping.is_set():
            return
        logger.info(f"Shutting down: {reason}")
        self._stopping.set()
        self.source.close()
        # SimpleQueue.put is reentrant and may run inside a signal handler
        self.source.events.put(_WAKE)

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until run() has finished its final shutdown."""
        return self._stopped.wait(timeout)

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def run(self) -> None:
        """
        Consume health events until request_stop().

        Raises:
            BindError: If the listener cannot be started. Cleanup (source
                       closed, controller down) still runs first.
        """
        logger.debug("Starting health check event loop")
        self.source.start()
        try:
            while not self._stopping.is_set():
                try:
                    healthy = self.source.events.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue

                if healthy is _WAKE:
                    break
                if self._stopping.is_set():
                    # Termination already began, this event is stale
                    self.events_dropped += 1
                    break

                self.events_handled += 1
                if healthy:
                    logger.debug("Backend healthy, bringing echo server up")
                    self.controller.up()
                else:
                    logger.debug("Backend unhealthy, taking echo server down")
                    self.controller.down()
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        self._stopping.set()
        self.source.close()
        self._drain()

        logger.debug("Initiating echo server shutdown")
        self.controller.down()

        if not self.source.join(self.join_timeout):
            logger.warning("Health checker did not stop in time")

        self._stopped.set()
        logger.info("Graceful shutdown complete")

    def _drain(self) -> None:
        while True:
            try:
                event = self.source.events.get_nowait()
            except queue.Empty:
                return
            if event is not _WAKE:
                self.events_dropped += 1

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def install_signal_handlers(self) -> None:
        """
        Route SIGINT and SIGTERM to request_stop().

        Must be called from the main thread. The previous handlers are
        saved so restore_signal_handlers() can put them back, which
        matters when the supervisor is embedded in a larger program.
        """
        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            self.request_stop(f"received {signal_name}")

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def restore_signal_handlers(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
