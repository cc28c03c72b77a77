"""
=============================================================================
HEALTHGATE - TCP Echo Service Gated By An HTTP Health Check
=============================================================================

Some load balancers can only health-check a backend over plain TCP. This
sidecar bridges the gap: it polls the backend's HTTP health endpoint and
keeps a TCP echo port open only while that endpoint is healthy. The port
being open is the liveness signal.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       HEALTHGATE ARCHITECTURE                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HealthChecker ──(every 5s)──► HealthProbe ──GET──► backend        │
    │        │                                                             │
    │        │ True / False                                                │
    │        ▼                                                             │
    │   Supervisor ──up()/down()──► EchoController                         │
    │                                   │                                  │
    │                                   ├──► AcceptLoop (port 1580)        │
    │                                   │        │                         │
    │                                   │        └──► EchoConnection × N   │
    │                                   │                                  │
    │                                   └──► WorkGroup (joins them all)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    healthgate/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m healthgate)
    ├── config.py            # GateConfig dataclass
    ├── log.py               # Logging and syslog setup
    ├── supervisor.py        # Health events → up()/down()
    ├── core/                # Listener lifecycle
    │   ├── controller.py    # EchoController state machine
    │   ├── listener.py      # Listening socket + accept loop
    │   ├── connection.py    # Per-client echo loop
    │   └── work_group.py    # Outstanding work counter
    └── health/              # Backend health checking
        ├── probe.py         # One HTTP check
        └── checker.py       # Polling loop

=============================================================================
QUICK START
=============================================================================

    from healthgate import EchoController, GateConfig

    controller = EchoController(GateConfig(bind_address="127.0.0.1"))
    controller.up()      # Port 1580 now echoes
    controller.down()    # Port closed, every connection drained

=============================================================================
"""

__version__ = "1.0.0"

from .config import GateConfig
from .core import BindError, EchoController, ListenerState
from .health import HealthChecker, HealthProbe, HealthStatus
from .supervisor import Supervisor

__all__ = [
    "GateConfig",
    "EchoController",
    "ListenerState",
    "BindError",
    "HealthProbe",
    "HealthStatus",
    "HealthChecker",
    "Supervisor",
    "__version__",
]
