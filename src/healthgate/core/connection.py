"""
=============================================================================
ECHO CONNECTION
=============================================================================

Serves one accepted client: every chunk read is written straight back.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

The echo service has no framing. Whatever a single recv() returns is sent
back with sendall(), so the client sees the same bytes in the same order,
but not necessarily in the same chunks it sent:

    Client sends:              Server might echo:
        send("hel")                sendall("hello\\n")
        send("lo\\n")

Only the bytes actually read are echoed. A short read is never padded out
to the buffer size.

=============================================================================
SERVE LOOP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │                        serve() Flow                              │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   ┌──────────────────────┐                                      │
    │   │ shutdown signal set? │── yes ──► close, return              │
    │   └──────────┬───────────┘                                      │
    │              │ no                                                │
    │   ┌──────────▼───────────┐                                      │
    │   │ settimeout(3s)       │   (bounds both recv and sendall)     │
    │   └──────────┬───────────┘                                      │
    │   ┌──────────▼───────────┐                                      │
    │   │ recv(4096)           │── timeout / error / EOF ──► close    │
    │   └──────────┬───────────┘                                      │
    │   ┌──────────▼───────────┐                                      │
    │   │ sendall(data)        │── error ──► close                    │
    │   └──────────┬───────────┘                                      │
    │              └──────────── loop ─────────────────────────────── │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Errors never leave this module. Each one ends its own connection and
nothing else.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► WRITING ──┐
     │             ▲   │                   │
     │             └───┼───────────────────┘
     │                 ▼
     └──────────► CLOSING ──────► CLOSED

=============================================================================
"""

import socket
import threading
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field

from .work_group import WorkGroup


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and tests."""

    NEW = "new"            # Just accepted
    READING = "reading"    # Waiting in recv()
    WRITING = "writing"    # Echoing data back
    CLOSING = "closing"    # Tearing the socket down
    CLOSED = "closed"      # Socket released


@dataclass
class EchoConnection:
    """
    One accepted client socket plus the shared shutdown plumbing.

    Attributes:
        socket: The client socket.
        address: Client's address tuple as returned by accept().
        shutdown: Shared shutdown signal. Once set, the loop exits at
                  the top of its next iteration.
        work: Shared work group. serve() calls work.done() exactly once.
        id: Short identifier for log lines.
        state: Current connection state.
        bytes_echoed: Total bytes written back.
        reads: Number of successful reads.
    """

    socket: socket.socket
    address: tuple
    shutdown: threading.Event
    work: WorkGroup

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    bytes_echoed: int = 0
    reads: int = 0

    buffer_size: int = 4096
    timeout: float = 3.0

    @property
    def peer(self) -> str:
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    def serve(self) -> None:
        """
        Echo until idle timeout, peer close, error, or shutdown.

        Runs on its own thread. Always closes the socket and marks the
        work unit done, whatever ends the loop.
        """
        logger.debug(f"[{self.id}] Serving {self.peer}")
        try:
            while not self.shutdown.is_set():
                # Deadline is reset every iteration so idle clients are dropped
                self.socket.settimeout(self.timeout)

                self.state = ConnectionState.READING
                try:
                    data = self.socket.recv(self.buffer_size)
                except socket.timeout:
                    logger.debug(f"[{self.id}] Idle for {self.timeout}s, closing")
                    break
                except OSError as e:
                    logger.debug(f"[{self.id}] Read failed: {e}")
                    break

                if not data:
                    logger.debug(f"[{self.id}] Peer closed the connection")
                    break
                self.reads += 1

                self.state = ConnectionState.WRITING
                try:
                    self.socket.sendall(data)
                except OSError as e:
                    logger.debug(f"[{self.id}] Write failed: {e}")
                    break
                self.bytes_echoed += len(data)
            else:
                logger.debug(f"[{self.id}] Shutdown signalled, closing")
        finally:
            self.close()
            self.work.done()
            logger.debug(
                f"[{self.id}] Closed after {self.age:.2f}s, "
                f"{self.reads} reads, {self.bytes_echoed} bytes echoed"
            )

    def close(self) -> None:
        """
        Close the client socket.

        shutdown(SHUT_RDWR) sends FIN before the descriptor is released.
        A peer that already vanished makes shutdown() fail, which is fine.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone
        finally:
            self.socket.close()
            self.state = ConnectionState.CLOSED
