"""
=============================================================================
ECHO LIFECYCLE CONTROLLER
=============================================================================

EchoController brings the echo listener up and takes it down on demand.
Callers (the supervisor, tests) only ever see up() and down(); this module
makes those two calls idempotent and race-free.

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────┐  up()   ┌──────────┐  bound   ┌──────┐  down()  ┌─────────┐
    │ DOWN │ ──────► │ STARTING │ ───────► │  UP  │ ───────► │ CLOSING │
    └──────┘         └──────────┘          └──────┘          └────┬────┘
       ▲                  │ bind failed                           │
       │◄─────────────────┘                                       │
       │◄──────────────────── all work done ──────────────────────┘

    up()   in STARTING or UP      → no-op
    up()   in CLOSING             → waits for DOWN, then starts
    down() in DOWN or CLOSING     → no-op, returns immediately
    down() in STARTING            → waits for UP, then stops

=============================================================================
WHAT IS SHARED BETWEEN THREADS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   EchoController ──owns──► listening socket                          │
    │        │                   (closed by the accept loop on exit)      │
    │        │                                                             │
    │        ├──creates──► shutdown Event ──read by──► AcceptLoop         │
    │        │              (one per up)   ──read by──► EchoConnection × N │
    │        │                                                             │
    │        └──creates──► WorkGroup ◄──add/done── AcceptLoop              │
    │                       (one per up)  ◄──done── EchoConnection × N     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only the Event and the WorkGroup cross thread boundaries, and both are
synchronized internally. Controller state is guarded by one Condition,
which also lets observers block on a state change with wait_for_state().

=============================================================================
SHUTDOWN LATENCY
=============================================================================

down() fires the shutdown Event and waits for the WorkGroup to drain.
The accept loop notices within accept_timeout (1s). A connection notices
once its current recv() returns, at most idle_timeout (3s) later. So
down() completes within max(1s, 3s) plus in-flight I/O, and never
abandons a connection halfway through echoing a chunk.

=============================================================================
"""

import socket
import logging
import threading
from enum import Enum
from typing import Optional, Tuple

from ..config import GateConfig
from .connection import EchoConnection
from .listener import AcceptLoop, create_listener
from .work_group import WorkGroup


logger = logging.getLogger(__name__)


class ListenerState(Enum):
    """Lifecycle states of the echo listener."""

    DOWN = "down"
    STARTING = "starting"
    UP = "up"
    CLOSING = "closing"


class EchoController:
    """
    Starts and stops the echo listener.

    Usage:
        controller = EchoController(GateConfig(bind_port=1580))
        controller.up()      # Port accepts connections
        controller.up()      # No-op
        controller.down()    # Blocks until every connection is closed
        controller.down()    # No-op

    Both transitions return the controller for chaining:

        with EchoController(config).up() as controller:
            ...              # down() runs on exit
    """

    def __init__(self, config: Optional[GateConfig] = None):
        self.config = config or GateConfig()

        self._cond = threading.Condition()
        self._state = ListenerState.DOWN

        # Per-run resources, created by up() and cleared by down().
        # _listener is set as soon as the bind succeeds, while still
        # STARTING, and dropped when CLOSING begins.
        self._listener: Optional[socket.socket] = None
        self._shutdown: Optional[threading.Event] = None
        self._work: Optional[WorkGroup] = None
        self._accept_loop: Optional[AcceptLoop] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._bound: Optional[Tuple[str, int]] = None

        # Counters for stats()
        self._starts = 0
        self._stops = 0
        self._accepted_total = 0

    # =========================================================================
    # INSPECTION
    # =========================================================================

    @property
    def state(self) -> ListenerState:
        with self._cond:
            return self._state

    @property
    def is_up(self) -> bool:
        return self.state == ListenerState.UP

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port) once the listener exists, else the configured pair."""
        with self._cond:
            if self._bound is not None:
                return self._bound
        return self.config.bind

    @property
    def outstanding(self) -> int:
        """Live accept loop plus live connections. 0 while down."""
        with self._cond:
            work = self._work
        return work.count if work is not None else 0

    def stats(self) -> dict:
        with self._cond:
            accepted = self._accept_loop.accepted if self._accept_loop else 0
            return {
                "state": self._state.value,
                "starts": self._starts,
                "stops": self._stops,
                "outstanding": self._work.count if self._work else 0,
                "accepted": accepted,
                "accepted_total": self._accepted_total + accepted,
            }

    def wait_for_state(self, state: ListenerState, timeout: Optional[float] = None) -> bool:
        """
        Block until the controller reaches state.

        Returns:
            True if the state was reached, False on timeout.
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._state == state, timeout)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def up(self) -> "EchoController":
        """
        Start the echo listener unless it is already starting or up.

        The listener is bound before this returns. A second call, from
        any thread, is a no-op.

        Raises:
            BindError: If the address cannot be resolved or bound. The
                       controller is left DOWN.
            RuntimeError: If the accept thread cannot be started. The
                          listener is closed and the controller is left DOWN.
        """
        with self._cond:
            if self._state in (ListenerState.STARTING, ListenerState.UP):
                logger.debug(f"Listener already {self._state.value}, nothing to do")
                return self
            if self._state == ListenerState.CLOSING:
                logger.debug("Listener is closing, waiting before starting again")
                self._cond.wait_for(lambda: self._state != ListenerState.CLOSING)
                if self._state != ListenerState.DOWN:
                    return self
            self._set_state(ListenerState.STARTING)

        host, port = self.config.bind
        logger.info(f"Starting TCP server on {host}:{port}")
        try:
            listener = create_listener(
                host,
                port,
                backlog=self.config.backlog,
                accept_timeout=self.config.accept_timeout,
            )
        except OSError:
            with self._cond:
                self._set_state(ListenerState.DOWN)
            raise

        with self._cond:
            bound = tuple(listener.getsockname()[:2])
            self._listener = listener
            self._bound = bound

        shutdown = threading.Event()
        work = WorkGroup()

        def make_connection(client_socket, client_address) -> EchoConnection:
            return EchoConnection(
                socket=client_socket,
                address=client_address,
                shutdown=shutdown,
                work=work,
                buffer_size=self.config.buffer_size,
                timeout=self.config.idle_timeout,
            )

        accept_loop = AcceptLoop(listener, shutdown, work, make_connection)
        thread = threading.Thread(target=accept_loop.run, name="echo-accept", daemon=True)

        with self._cond:
            self._shutdown = shutdown
            self._work = work
            self._accept_loop = accept_loop
            self._accept_thread = thread

            # The accept loop's own unit of work
            work.add()
            try:
                thread.start()
            except RuntimeError:
                logger.error(f"Could not start accept thread on {bound[0]}:{bound[1]}")
                listener.close()
                self._listener = None
                self._bound = None
                self._shutdown = None
                self._work = None
                self._accept_loop = None
                self._accept_thread = None
                self._set_state(ListenerState.DOWN)
                raise

            self._starts += 1
            self._set_state(ListenerState.UP)

        logger.info(f"TCP server listening on {bound[0]}:{bound[1]}")
        return self

    def down(self) -> "EchoController":
        """
        Stop the echo listener and wait for every connection to finish.

        A call while already down or already closing returns at once;
        the shutdown signal is fired exactly once per run.
        """
        with self._cond:
            if self._state == ListenerState.STARTING:
                self._cond.wait_for(lambda: self._state != ListenerState.STARTING)
            if self._state == ListenerState.DOWN:
                logger.debug("Listener already down, nothing to do")
                return self
            if self._state == ListenerState.CLOSING:
                logger.debug("Shutdown already in progress, nothing to do")
                return self

            self._set_state(ListenerState.CLOSING)
            shutdown = self._shutdown
            work = self._work
            thread = self._accept_thread
            # The accept loop closes the socket on its way out
            self._listener = None

        logger.info("Gracefully stopping TCP server")
        shutdown.set()
        work.wait()
        thread.join()

        with self._cond:
            self._accepted_total += self._accept_loop.accepted
            self._shutdown = None
            self._work = None
            self._accept_loop = None
            self._accept_thread = None
            self._bound = None
            self._stops += 1
            self._set_state(ListenerState.DOWN)

        logger.info("Graceful TCP server termination complete")
        return self

    def _set_state(self, state: ListenerState) -> None:
        # Caller holds self._cond
        logger.debug(f"Listener state {self._state.value} -> {state.value}")
        self._state = state
        self._cond.notify_all()

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self) -> "EchoController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.down()

    def __repr__(self) -> str:
        host, port = self.address
        return f"EchoController({host}:{port}, state={self.state.value})"
