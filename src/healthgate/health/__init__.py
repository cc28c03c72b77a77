"""
Health checking for the monitored backend.

HealthProbe runs one HTTP check, HealthChecker runs it on a schedule and
publishes the results for the supervisor.
"""

from .probe import HealthProbe, HealthStatus
from .checker import HealthChecker

__all__ = ["HealthProbe", "HealthStatus", "HealthChecker"]
