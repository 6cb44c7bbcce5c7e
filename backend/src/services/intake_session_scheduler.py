"""
Intake session scheduler.

Periodically removes first-visit intake sessions that have been idle for
longer than INTAKE_SESSION_TTL_MINUTES. Appointments already booked by an
abandoned session are kept.
"""

import asyncio
import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from core.constants import INTAKE_SWEEP_INTERVAL_MINUTES, INTAKE_SWEEP_MAX_INSTANCES
from services.first_visit_service import IntakeSessionRegistry, get_intake_registry
from utils.datetime_utils import CLINIC_TZ

logger = logging.getLogger(__name__)

# Global singleton instance
_intake_session_scheduler: Optional['IntakeSessionScheduler'] = None


class IntakeSessionScheduler:
    """
    Scheduler for sweeping abandoned intake sessions.

    Runs every INTAKE_SWEEP_INTERVAL_MINUTES minutes.
    """

    def __init__(self, registry: Optional[IntakeSessionRegistry] = None):
        self.scheduler = AsyncIOScheduler(timezone=CLINIC_TZ)
        self.registry = registry if registry is not None else get_intake_registry()
        self._is_started = False

    @property
    def is_started(self) -> bool:
        return self._is_started

    async def start_scheduler(self) -> None:
        """
        Start the background sweep.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Intake session scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._run_sweep,
            IntervalTrigger(minutes=INTAKE_SWEEP_INTERVAL_MINUTES),
            id="intake_session_sweep",
            name="Sweep abandoned intake sessions",
            replace_existing=True,
            max_instances=INTAKE_SWEEP_MAX_INSTANCES,
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Intake session scheduler started (runs every {INTAKE_SWEEP_INTERVAL_MINUTES} minutes)")

    async def stop_scheduler(self) -> None:
        """
        Stop the background sweep.

        This should be called during application shutdown.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=False)
            self._is_started = False
            logger.info("Intake session scheduler stopped")

    async def _run_sweep(self) -> None:
        # Registry access takes a thread lock, keep it off the event loop
        await asyncio.to_thread(self.execute_sweep)

    def execute_sweep(self) -> int:
        """Remove expired sessions. Returns how many were removed."""
        try:
            removed = self.registry.sweep_expired()
        except Exception as e:
            logger.exception(f"Error during intake session sweep: {e}")
            # Don't re-raise - allow scheduler to continue
            return 0
        if removed:
            logger.info(f"Swept {len(removed)} abandoned intake sessions")
        return len(removed)


def get_intake_session_scheduler() -> IntakeSessionScheduler:
    """
    Get the global intake session scheduler instance.

    Returns:
        IntakeSessionScheduler: The global scheduler instance
    """
    global _intake_session_scheduler
    if _intake_session_scheduler is None:
        _intake_session_scheduler = IntakeSessionScheduler()
    return _intake_session_scheduler


async def start_intake_session_scheduler() -> None:
    """Start the global intake session scheduler."""
    scheduler = get_intake_session_scheduler()
    await scheduler.start_scheduler()


async def stop_intake_session_scheduler() -> None:
    """Stop the global intake session scheduler."""
    global _intake_session_scheduler
    if _intake_session_scheduler:
        await _intake_session_scheduler.stop_scheduler()
        # The AsyncIOScheduler is bound to the loop it started on
        _intake_session_scheduler = None
