"""
=============================================================================
HTTP HEALTH PROBE
=============================================================================

Decides whether the monitored backend is healthy with one HTTP GET.

=============================================================================
WHAT COUNTS AS HEALTHY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GET check_uri                                                      │
    │       │                                                              │
    │       ├── connection error / timeout ──────────► unhealthy           │
    │       │                                                              │
    │       ├── status != 200 ───────────────────────► unhealthy           │
    │       │                                                              │
    │       ├── body does not match check_match ─────► unhealthy           │
    │       │                                                              │
    │       └── otherwise ───────────────────────────► healthy             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There is no retry inside a check. A single failure is reported right
away and the next check happens on the checker's schedule.

The body pattern is searched, not anchored, so "(?i)^ok\\b" needs the body
to start with "ok" while "ok" alone matches anywhere. Use ".*" to accept
any body and rely on the status code only.

=============================================================================
"""

import re
import time
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx


logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """
    Result of one health check.

    Usage:
        status = probe.check()
        if status.healthy:
            controller.up()
    """

    healthy: bool           # True if the check passed
    message: str = "OK"     # Human-readable reason
    details: Dict[str, Any] = field(default_factory=dict)  # Extra info

    def to_dict(self) -> dict:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "message": self.message,
            **self.details,
        }


class HealthProbe:
    """
    Runs health checks against one URI.

    Args:
        uri: URI to GET.
        match: Regular expression searched for in the response body.
        timeout: Request timeout in seconds.
        client: Optional pre-built httpx.Client (tests pass one with a
                MockTransport). A client created here is closed by close().
    """

    def __init__(
        self,
        uri: str,
        match: str = r"(?i)^ok\b",
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        self.uri = uri
        self.pattern = re.compile(match)
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def check(self) -> HealthStatus:
        """Run one check. Never raises for network or HTTP failures."""
        logger.debug(f"Executing health check against {self.uri}")
        started = time.monotonic()

        try:
            response = self._client.get(self.uri)
        except httpx.HTTPError as e:
            logger.warning(f"Health check connection failed: {e}")
            return HealthStatus(
                healthy=False,
                message=f"connection failed: {e}",
                details={"uri": self.uri},
            )

        details = {
            "uri": self.uri,
            "status_code": response.status_code,
            "elapsed_ms": round((time.monotonic() - started) * 1000, 1),
        }

        if response.status_code != httpx.codes.OK:
            logger.warning(f"Health check failed with status code {response.status_code}")
            return HealthStatus(
                healthy=False,
                message=f"unexpected status code {response.status_code}",
                details=details,
            )

        body = response.text
        if self.pattern.search(body) is None:
            logger.warning(
                f"Health check failed, {self.pattern.pattern!r} not in content {body[:200]!r}"
            )
            return HealthStatus(
                healthy=False,
                message="response body did not match",
                details=details,
            )

        logger.debug(f"Health check passed in {details['elapsed_ms']}ms")
        return HealthStatus(healthy=True, details=details)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HealthProbe":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
