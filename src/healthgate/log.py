"""
=============================================================================
LOGGING SETUP
=============================================================================

Configures the standard library logging for the process: level, format,
and optionally syslog instead of stderr.

=============================================================================
LEVEL NAMES
=============================================================================

The CLI accepts the usual names plus their syslog spellings:

    ┌───────────────────────────────┬──────────────────┐
    │ --log-level                   │ logging level    │
    ├───────────────────────────────┼──────────────────┤
    │ trace, debug                  │ DEBUG            │
    │ info (and anything unknown)   │ INFO             │
    │ warn, warning, notice         │ WARNING          │
    │ err, error                    │ ERROR            │
    │ crit, fatal, emerg, panic,    │ CRITICAL         │
    │ alert                         │                  │
    └───────────────────────────────┴──────────────────┘

=============================================================================
SYSLOG
=============================================================================

    syslog_address = ""           → /dev/log (local syslog socket)
    syslog_address = "host:514"   → UDP, or TCP with syslog_protocol="tcp"

When syslog is on, stderr output is dropped and timestamps are left to the
syslog daemon.

=============================================================================
"""

import os
import socket
import logging
import logging.handlers
from typing import Optional

from .config import GateConfig


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SYSLOG_FORMAT = "healthgate[%(process)d]: [%(levelname)s] %(name)s: %(message)s"

LOCAL_SYSLOG_SOCKETS = ("/dev/log", "/var/run/syslog", "/var/run/log")

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "notice": logging.WARNING,
    "err": logging.ERROR,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "emerg": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "alert": logging.CRITICAL,
}


def parse_level(name: str) -> int:
    """Map a CLI level name to a logging level. Unknown names give INFO."""
    return _LEVELS.get(name.strip().lower(), logging.INFO)


def _local_syslog_socket() -> str:
    for path in LOCAL_SYSLOG_SOCKETS:
        if os.path.exists(path):
            return path
    return LOCAL_SYSLOG_SOCKETS[0]


def create_syslog_handler(config: GateConfig) -> logging.handlers.SysLogHandler:
    """
    Build a SysLogHandler for the configured target.

    Raises:
        OSError: If the syslog socket cannot be opened.
    """
    target = config.syslog_target()
    if target is None:
        return logging.handlers.SysLogHandler(address=_local_syslog_socket())

    sock_type = socket.SOCK_STREAM if config.syslog_protocol.lower() == "tcp" else socket.SOCK_DGRAM
    return logging.handlers.SysLogHandler(address=target, socktype=sock_type)


def setup_logging(config: GateConfig, stream: Optional[object] = None) -> logging.Logger:
    """
    Configure the healthgate logger hierarchy.

    Args:
        config: Provides log_level and the syslog settings.
        stream: Stream for the stderr handler (tests pass a StringIO).

    Returns:
        The "healthgate" package logger.

    Raises:
        OSError: If syslog is enabled but cannot be reached. Startup should
                 treat this as fatal.
    """
    level = parse_level(config.log_level)

    root_logger = logging.getLogger("healthgate")
    root_logger.setLevel(level)
    root_logger.propagate = False

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if config.syslog_enabled:
        handler = create_syslog_handler(config)
        handler.setFormatter(logging.Formatter(SYSLOG_FORMAT))
    else:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    handler.setLevel(level)
    root_logger.addHandler(handler)

    if config.syslog_enabled:
        root_logger.debug("Syslog enabled, stderr logging disabled")
    return root_logger
