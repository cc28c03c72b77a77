"""
=============================================================================
CORE LISTENER COMPONENTS
=============================================================================

The pieces that bring the echo port up and take it down again.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ECHO CONTROLLER                               │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Public up() / down() with DOWN → STARTING → UP → CLOSING states  │
    │  • Binds the listening socket synchronously in up()                 │
    │  • Fires the shutdown signal and joins all work in down()           │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Starts one per up()
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ACCEPT LOOP                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • accept() with a 1 second timeout, re-checks the shutdown signal  │
    │  • One thread per accepted client                                   │
    │  • Closes the listening socket when the signal fires                │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Spawns one per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                       ECHO CONNECTION                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • recv() up to 4096 bytes, sendall() the same bytes back           │
    │  • 3 second deadline per read and write                             │
    │  • Closes on timeout, error, EOF or shutdown signal                 │
    └─────────────────────────────────────────────────────────────────────┘

All three report to a shared WorkGroup so down() knows when the last one
has exited.

=============================================================================
"""

from .work_group import WorkGroup
from .connection import EchoConnection, ConnectionState
from .listener import AcceptLoop, BindError, create_listener
from .controller import EchoController, ListenerState

__all__ = [
    "EchoController",   # up()/down() lifecycle
    "ListenerState",    # Controller states
    "AcceptLoop",       # Accepts clients until shutdown
    "BindError",        # Fatal listener startup failure
    "create_listener",  # Resolve, bind, listen
    "EchoConnection",   # Serves one client
    "ConnectionState",  # Per-connection states
    "WorkGroup",        # Outstanding work counter
]
