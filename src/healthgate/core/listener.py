"""
=============================================================================
LISTENING SOCKET AND ACCEPT LOOP
=============================================================================

This module creates the listening socket and runs the loop that accepts
clients and hands each one to its own EchoConnection thread.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. getaddrinfo()  Resolve bind_address:bind_port
    2. socket()       Create a socket for the resolved family
    3. bind()         Reserve the address
    4. listen()       OS starts queueing connections
    5. accept()       Take one queued connection (bounded by a timeout)
    6. close()        Release the port; new connects are refused

Steps 1-4 run synchronously inside EchoController.up(). Steps 5-6 run on
the accept loop thread.

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

accept() has no cancellation. The listening socket carries a 1 second
timeout so the loop wakes up at least once a second to look at the
shutdown signal:

    while not shutdown.is_set():
        try:
            accept()          # Blocks for 1 second max
        except timeout:
            continue          # Check the signal, loop again

No helper thread races the accept call, so nothing is left behind when
the timeout wins.

=============================================================================
"""

import errno
import socket
import logging
import threading
from typing import Callable, Tuple

from .connection import EchoConnection
from .work_group import WorkGroup


logger = logging.getLogger(__name__)


def _errnos(*names):
    return frozenset(
        code for code in (getattr(errno, name, None) for name in names)
        if code is not None
    )


# accept() errors caused by one client or an interrupted call.
# The loop retries at once.
TRANSIENT_ACCEPT_ERRORS = _errnos(
    "EAGAIN", "EWOULDBLOCK", "EINTR", "ECONNABORTED", "EPROTO",
)

# Out of descriptors or memory. The pending connection stays queued, so
# accept() fails again immediately until a handler releases something.
RESOURCE_ACCEPT_ERRORS = _errnos("EMFILE", "ENFILE", "ENOBUFS", "ENOMEM")

# Pause after a resource or unexpected accept error so the loop does not spin
ACCEPT_ERROR_BACKOFF = 0.05


class BindError(OSError):
    """The configured address could not be resolved, bound or listened on."""


def create_listener(
    host: str,
    port: int,
    backlog: int = 128,
    accept_timeout: float = 1.0,
) -> socket.socket:
    """
    Resolve, bind and listen.

    Args:
        host: Address or host name to bind.
        port: Port to bind. 0 lets the OS choose.
        backlog: Accept queue length.
        accept_timeout: Timeout applied to every accept() call.

    Returns:
        A listening socket with its accept timeout set.

    Raises:
        BindError: On any resolution, bind or listen failure.
    """
    try:
        infos = socket.getaddrinfo(
            host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
        )
    except socket.gaierror as e:
        raise BindError(f"invalid listen address {host}:{port}: {e}") from e

    family, sock_type, proto, _, sockaddr = infos[0]
    sock = socket.socket(family, sock_type, proto)
    try:
        # SO_REUSEADDR: rebind right after a down/up cycle while the old
        # port still has connections in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen(backlog)
    except OSError as e:
        sock.close()
        raise BindError(f"could not start listener on {host}:{port}: {e}") from e

    sock.settimeout(accept_timeout)
    return sock


class AcceptLoop:
    """
    Accepts connections until the shutdown signal fires.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     Accept Loop Flow                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while not shutdown.is_set():                                       │
    │       │                                                              │
    │       ├──► accept()           (1 second max)                         │
    │       │       ├── timeout     → continue                             │
    │       │       ├── transient   → continue                             │
    │       │       ├── exhausted   → log, back off, continue              │
    │       │       └── other error → log, back off, continue              │
    │       │                                                              │
    │       ├──► work.add()                                                │
    │       └──► Thread(EchoConnection.serve).start()                      │
    │                                                                      │
    │   finally:                                                           │
    │       listener.close()        Port stops accepting                   │
    │       work.done()             Accept loop's own unit                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    The loop never mutates controller state. It owns the listening socket
    only in the sense that it is the one that closes it on the way out.
    """

    def __init__(
        self,
        listener: socket.socket,
        shutdown: threading.Event,
        work: WorkGroup,
        connection_factory: Callable[[socket.socket, Tuple], EchoConnection],
    ):
        self.listener = listener
        self.shutdown = shutdown
        self.work = work
        self.connection_factory = connection_factory
        self.accepted = 0

    def run(self) -> None:
        logger.debug("Accept loop started")
        try:
            while not self.shutdown.is_set():
                try:
                    client_socket, client_address = self.listener.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if e.errno in TRANSIENT_ACCEPT_ERRORS:
                        continue
                    if e.errno in RESOURCE_ACCEPT_ERRORS:
                        logger.warning(f"Accept failed, backing off: {e}")
                        self.shutdown.wait(ACCEPT_ERROR_BACKOFF)
                        continue
                    logger.error(f"Accept error: {e}")
                    self.shutdown.wait(ACCEPT_ERROR_BACKOFF)
                    continue

                self._spawn(client_socket, client_address)
        finally:
            self._close_listener()
            self.work.done()
            logger.debug(f"Accept loop stopped after {self.accepted} connections")

    def _spawn(self, client_socket: socket.socket, client_address: Tuple) -> None:
        """Start a handler thread for one accepted client."""
        logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

        try:
            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass  # Not every family supports it

        conn = self.connection_factory(client_socket, client_address)

        # Count the handler before it runs so down() can never miss it
        self.work.add()
        thread = threading.Thread(
            target=conn.serve,
            name=f"echo-{conn.id}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as e:
            logger.error(f"[{conn.id}] Could not start handler thread: {e}")
            conn.close()
            self.work.done()
            return
        self.accepted += 1

    def _close_listener(self) -> None:
        try:
            self.listener.close()
        except OSError:
            pass  # Already closed
