"""
=============================================================================
HEALTHGATE CLI ENTRY POINT
=============================================================================

Command-line interface for running the health-gated echo sidecar.

=============================================================================
USAGE
=============================================================================

    # Defaults: echo on 0.0.0.0:1580 while http://localhost:8080/healthz
    # answers 200 with a body starting with "ok"
    python -m healthgate

    # Different backend and port
    python -m healthgate --check-uri http://10.0.0.5/status --bind-port 9000

    # Accept any 200 response regardless of body
    python -m healthgate --check-match '.*'

    # Log to the local syslog socket
    python -m healthgate --syslog-enable --log-level debug

=============================================================================
EXIT STATUS
=============================================================================

    0   Stopped by SIGINT/SIGTERM after a graceful shutdown
    1   The echo listener could not be bound, or syslog could not be opened
    2   Invalid arguments or configuration

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import GateConfig
from .core import BindError, EchoController
from .health import HealthChecker, HealthProbe
from .log import setup_logging
from .supervisor import Supervisor


logger = logging.getLogger("healthgate")


def build_parser(defaults: Optional[GateConfig] = None) -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Defaults come from the environment (GateConfig.from_env) so a flag
    always wins over an environment variable.
    """
    d = defaults or GateConfig()

    parser = argparse.ArgumentParser(
        prog="healthgate",
        description="TCP echo service that is only up while an HTTP health check passes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m healthgate                                  # Run with defaults
  python -m healthgate --bind-port 9000                 # Custom echo port
  python -m healthgate --check-uri http://db:8080/ping  # Custom health URI
  python -m healthgate --check-match '.*'               # Status code only
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # LISTENER ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--bind-address",
        default=d.bind_address,
        help=f"IP address to bind to (default: {d.bind_address})"
    )

    parser.add_argument(
        "--bind-port",
        type=int,
        default=d.bind_port,
        help=f"Port to listen on (default: {d.bind_port})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # HEALTH CHECK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--check-uri",
        default=d.check_uri,
        help=f"URI to check (default: {d.check_uri})"
    )

    parser.add_argument(
        "--check-match",
        default=d.check_match,
        help=(
            "Python regex searched for in the response body. "
            "Use '.*' to match anything and rely only on the status code. "
            "The default is case insensitive 'ok' followed by a word boundary"
        )
    )

    parser.add_argument(
        "--check-interval",
        type=float,
        default=d.check_interval,
        help=f"Seconds between health checks (default: {d.check_interval:g})"
    )

    parser.add_argument(
        "--check-timeout",
        type=float,
        default=d.check_timeout,
        help=f"Timeout for a single health check in seconds (default: {d.check_timeout:g})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--syslog-enable",
        action="store_true",
        default=d.syslog_enabled,
        help="Enable syslog messages"
    )

    parser.add_argument(
        "--syslog-addr",
        default=d.syslog_address,
        help="Syslog address and port, ex: 127.0.0.1:514 (blank for local syslog socket)"
    )

    parser.add_argument(
        "--syslog-proto",
        default=d.syslog_protocol,
        help="Protocol to use for syslog, tcp or udp (blank for local syslog socket)"
    )

    parser.add_argument(
        "--log-level",
        default=d.log_level,
        help="Logging level: trace, debug, info, warning, error, fatal (default: info)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"healthgate {__version__}"
    )

    return parser


def config_from_args(argv: Optional[List[str]] = None) -> GateConfig:
    """Parse argv on top of the environment and return a validated config."""
    parser = build_parser(GateConfig.from_env())
    args = parser.parse_args(argv)

    config = GateConfig(
        bind_address=args.bind_address,
        bind_port=args.bind_port,
        check_uri=args.check_uri,
        check_match=args.check_match,
        check_interval=args.check_interval,
        check_timeout=args.check_timeout,
        log_level=args.log_level,
        syslog_enabled=args.syslog_enable,
        syslog_address=args.syslog_addr,
        syslog_protocol=args.syslog_proto,
    )
    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    1. Read configuration (CLI over environment over defaults)
    2. Configure logging
    3. Build controller, probe, checker and supervisor
    4. Run until SIGINT/SIGTERM
    """
    try:
        config = config_from_args(argv)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        setup_logging(config)
    except OSError as e:
        print(f"Error initializing syslog: {e}", file=sys.stderr)
        return 1

    controller = EchoController(config)
    probe = HealthProbe(config.check_uri, config.check_match, timeout=config.check_timeout)
    checker = HealthChecker(probe, interval=config.check_interval)
    supervisor = Supervisor(controller, checker)

    logger.info(
        f"healthgate {__version__} gating {config.bind_address}:{config.bind_port} "
        f"on {config.check_uri}"
    )

    supervisor.install_signal_handlers()
    try:
        supervisor.run()
    except BindError as e:
        logger.error(str(e))
        return 1
    finally:
        supervisor.restore_signal_handlers()

    return 0


if __name__ == "__main__":
    sys.exit(main())
