"""
=============================================================================
GATE CONFIGURATION
=============================================================================

Centralized configuration for the health-gated echo service.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m healthgate --bind-port 1580                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HEALTHGATE_BIND_PORT=1580 python -m healthgate            │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The listener timings (idle, accept) and the read buffer size are part of
the service contract and have no CLI flags; tests shrink them to run fast.

=============================================================================
"""

import os
import re
from dataclasses import dataclass
from typing import Optional, Tuple


SYSLOG_PROTOCOLS = ("", "tcp", "udp")

LOG_LEVELS = (
    "trace", "debug",
    "info",
    "warn", "warning", "notice",
    "err", "error",
    "crit", "fatal", "emerg", "panic", "alert",
)

ENV_PREFIX = "HEALTHGATE_"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GateConfig:
    """
    Configuration for the echo listener and the health check that gates it.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    LISTENER
    - bind_address, bind_port, backlog

    CONNECTIONS
    - idle_timeout, accept_timeout, buffer_size

    HEALTH CHECK
    - check_uri, check_match, check_interval, check_timeout

    LOGGING
    - log_level, syslog_enabled, syslog_address, syslog_protocol

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # LISTENER
    # ─────────────────────────────────────────────────────────────────────

    bind_address: str = "0.0.0.0"
    """IP address (or resolvable host name) the echo listener binds to."""

    bind_port: int = 1580
    """TCP port for the echo listener. 0 lets the OS pick one (tests)."""

    backlog: int = 128
    """Accept queue length passed to listen()."""

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTIONS
    # ─────────────────────────────────────────────────────────────────────

    idle_timeout: float = 3.0
    """
    Per-read and per-write deadline on an accepted connection.
    A client silent for this long is disconnected.
    """

    accept_timeout: float = 1.0
    """
    Upper bound on a single accept() call. The accept loop re-checks the
    shutdown signal at least this often.
    """

    buffer_size: int = 4096
    """Maximum bytes read (and echoed) per iteration."""

    # ─────────────────────────────────────────────────────────────────────
    # HEALTH CHECK
    # ─────────────────────────────────────────────────────────────────────

    check_uri: str = "http://localhost:8080/healthz"
    """URI polled to decide whether the echo listener should be up."""

    check_match: str = r"(?i)^ok\b"
    """
    Regular expression searched for in the response body.
    Default is case insensitive "ok" followed by a word boundary.
    Use '.*' to rely only on the status code.
    """

    check_interval: float = 5.0
    """Seconds between health checks. The first check runs immediately."""

    check_timeout: float = 5.0
    """Timeout for a single health check request."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "info"
    """trace, debug, info, warning, error or fatal (plus syslog aliases)."""

    syslog_enabled: bool = False
    """Send log records to syslog instead of stderr."""

    syslog_address: str = ""
    """host:port of the syslog server. Blank means the local syslog socket."""

    syslog_protocol: str = ""
    """'tcp' or 'udp'. Blank means the local syslog socket."""

    @property
    def bind(self) -> Tuple[str, int]:
        return (self.bind_address, self.bind_port)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "GateConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HEALTHGATE_BIND_ADDRESS     Listener address (default: 0.0.0.0)
        HEALTHGATE_BIND_PORT        Listener port (default: 1580)
        HEALTHGATE_CHECK_URI        URI to check
        HEALTHGATE_CHECK_MATCH      Body regex (default: (?i)^ok\\b)
        HEALTHGATE_CHECK_INTERVAL   Seconds between checks (default: 5)
        HEALTHGATE_CHECK_TIMEOUT    Request timeout seconds (default: 5)
        HEALTHGATE_LOG_LEVEL        Logging level (default: info)
        HEALTHGATE_SYSLOG_ENABLE    1/true/yes to log to syslog
        HEALTHGATE_SYSLOG_ADDR      Syslog host:port
        HEALTHGATE_SYSLOG_PROTO     tcp or udp

        =====================================================================
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str, default):
            return env.get(ENV_PREFIX + name, default)

        return cls(
            bind_address=get("BIND_ADDRESS", defaults.bind_address),
            bind_port=int(get("BIND_PORT", defaults.bind_port)),
            check_uri=get("CHECK_URI", defaults.check_uri),
            check_match=get("CHECK_MATCH", defaults.check_match),
            check_interval=float(get("CHECK_INTERVAL", defaults.check_interval)),
            check_timeout=float(get("CHECK_TIMEOUT", defaults.check_timeout)),
            log_level=get("LOG_LEVEL", defaults.log_level),
            syslog_enabled=_env_bool(get("SYSLOG_ENABLE", "")),
            syslog_address=get("SYSLOG_ADDR", defaults.syslog_address),
            syslog_protocol=get("SYSLOG_PROTO", defaults.syslog_protocol),
        )

    def syslog_target(self) -> Optional[Tuple[str, int]]:
        """
        Parse syslog_address into (host, port).

        Returns None when the local syslog socket should be used.
        """
        if not self.syslog_address:
            return None
        host, sep, port = self.syslog_address.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(
                f"Invalid syslog address: {self.syslog_address!r}. Expected host:port."
            )
        return (host.strip("[]"), int(port))

    def validate(self) -> None:
        """
        Validate configuration values.

        Runs at startup so a bad flag stops the process before any socket
        is opened or any health check is sent.
        """
        if not 0 <= self.bind_port < 65536:
            raise ValueError(f"Invalid port: {self.bind_port}. Must be 0-65535.")

        if not self.bind_address:
            raise ValueError("bind_address must not be empty")

        for name in ("idle_timeout", "accept_timeout", "check_interval", "check_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        try:
            re.compile(self.check_match)
        except re.error as e:
            raise ValueError(f"Invalid check_match pattern {self.check_match!r}: {e}") from e

        if self.syslog_protocol.lower() not in SYSLOG_PROTOCOLS:
            raise ValueError(
                f"Invalid syslog protocol: {self.syslog_protocol!r}. Use tcp or udp."
            )

        if self.log_level.lower() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level!r}")

        self.syslog_target()
