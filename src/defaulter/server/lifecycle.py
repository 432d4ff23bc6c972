"""Daemon lifecycle management.

This module provides classes for tracking daemon running state and
coordinating graceful (or fatal) shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)


@dataclass
class ShutdownState:
    """Tracks shutdown progress for graceful termination."""

    initiated: datetime | None = None
    """UTC timestamp when shutdown was initiated, None if not shutting down."""

    timeout_deadline: datetime | None = None
    """UTC timestamp after which remaining tasks will be cancelled."""

    fatal: bool = False
    """True when shutdown was requested because a run aborted."""

    signal_name: str | None = None
    """Name of the signal that requested shutdown, if any."""

    @property
    def is_shutting_down(self) -> bool:
        """Returns True if shutdown has been initiated."""
        return self.initiated is not None

    @property
    def is_timed_out(self) -> bool:
        """Returns True if shutdown timeout has been exceeded."""
        if self.timeout_deadline is None:
            return False
        return datetime.now(timezone.utc) >= self.timeout_deadline


@dataclass
class DaemonLifecycle:
    """Manages daemon startup and shutdown state.

    Shared by the HTTP handlers, the scheduler and the signal handlers;
    the first shutdown request wins.
    """

    shutdown_timeout: float = 30.0
    """Seconds to wait for graceful shutdown before cancelling tasks."""

    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """UTC timestamp when daemon started."""

    shutdown_state: ShutdownState = field(default_factory=ShutdownState)
    """Current shutdown state."""

    @property
    def uptime_seconds(self) -> float:
        """Returns seconds since daemon startup."""
        return (datetime.now(timezone.utc) - self.start_time).total_seconds()

    @property
    def is_shutting_down(self) -> bool:
        """Returns True if shutdown has been initiated."""
        return self.shutdown_state.is_shutting_down

    @property
    def is_fatal(self) -> bool:
        """Returns True if shutdown was caused by an aborted run."""
        return self.shutdown_state.fatal

    @property
    def is_interrupted(self) -> bool:
        """Returns True if a SIGTERM/SIGINT requested shutdown."""
        return self.shutdown_state.signal_name is not None

    def initiate_shutdown(
        self, *, fatal: bool = False, signal_name: str | None = None
    ) -> None:
        """Begin shutdown.

        Idempotent, except that a later fatal or signal request is still
        recorded.

        Args:
            fatal: The shutdown is caused by an aborted run; the daemon
                exits non-zero.
            signal_name: The shutdown was requested by this signal.
        """
        if fatal:
            self.shutdown_state.fatal = True
        if signal_name is not None and self.shutdown_state.signal_name is None:
            self.shutdown_state.signal_name = signal_name
        if self.shutdown_state.initiated is not None:
            return

        now = datetime.now(timezone.utc)
        self.shutdown_state.initiated = now
        self.shutdown_state.timeout_deadline = now + timedelta(
            seconds=self.shutdown_timeout
        )
