"""Daemon mode: webhook listener, health endpoint and cron scheduling."""

from defaulter.server.app import HealthStatus, create_app, run_guarded
from defaulter.server.lifecycle import DaemonLifecycle, ShutdownState
from defaulter.server.scheduler import PartialRunScheduler

__all__ = [
    "DaemonLifecycle",
    "HealthStatus",
    "PartialRunScheduler",
    "ShutdownState",
    "create_app",
    "run_guarded",
]
