"""
Demonstration driver that walks complaints through the lifecycle on timers.

Each complaint has at most one pending one-shot timer, tied to the status
observed when it was scheduled. When the timer fires the complaint is read
again; the transition is only applied if the status is still the observed
one, so a stale timer can never overwrite a newer status.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from . import lifecycle
from .complaint_store import ComplaintStore
from .models import ComplaintStatus

logger = logging.getLogger("water_tracker.auto_advancer")

DEFAULT_DELAYS = (10.0, 15.0, 20.0)


def delays_by_status(delays: Iterable[float]) -> Dict[ComplaintStatus, float]:
    """Map (pending, under-review, in-progress) delays onto their statuses."""
    delays = tuple(delays)
    movable = lifecycle.STATUS_ORDER[:-1]
    if len(delays) != len(movable):
        raise ValueError(f"expected {len(movable)} delays, got {len(delays)}")
    return dict(zip(movable, delays))


class AutoAdvancer:
    """Schedules one forward transition at a time per complaint."""

    def __init__(self, store: ComplaintStore, delays: Iterable[float] = DEFAULT_DELAYS):
        self.store = store
        self.delays = delays_by_status(delays)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._observed: Dict[str, ComplaintStatus] = {}

    def start(self, complaint_id: str) -> bool:
        """Schedule the next transition for the complaint's current status.

        Replaces any timer already pending for the complaint. Returns False when
        the complaint does not exist or is already resolved.
        """
        complaint = self.store.get(complaint_id)
        if complaint is None:
            logger.debug("Not scheduling unknown complaint %s", complaint_id)
            return False
        return self._schedule(complaint_id, complaint.status)

    def cancel(self, complaint_id: str) -> bool:
        """Cancel the pending timer for a complaint; False if none was pending."""
        self._observed.pop(complaint_id, None)
        task = self._tasks.pop(complaint_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Cancelled auto-advance for %s", complaint_id)
        return True

    def is_scheduled(self, complaint_id: str) -> bool:
        task = self._tasks.get(complaint_id)
        return task is not None and not task.done()

    def scheduled_ids(self) -> List[str]:
        return [cid for cid in self._tasks if self.is_scheduled(cid)]

    def observed_status(self, complaint_id: str) -> Optional[ComplaintStatus]:
        """Status the pending timer for this complaint was scheduled against."""
        if not self.is_scheduled(complaint_id):
            return None
        return self._observed.get(complaint_id)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._observed.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Auto-advancer stopped (%d timers cancelled)", len(tasks))

    def _schedule(self, complaint_id: str, status: ComplaintStatus) -> bool:
        self.cancel(complaint_id)
        delay = self.delays.get(status)
        if delay is None:
            logger.info("Complaint %s is %s; nothing to schedule", complaint_id, status.value)
            return False

        task = asyncio.get_running_loop().create_task(
            self._advance_later(complaint_id, status, delay),
            name=f"auto-advance:{complaint_id}",
        )
        self._tasks[complaint_id] = task
        self._observed[complaint_id] = status
        logger.info("Scheduled auto-advance of %s from %s in %.1fs",
                    complaint_id, status.value, delay)
        return True

    async def _advance_later(
        self, complaint_id: str, observed: ComplaintStatus, delay: float
    ) -> None:
        await asyncio.sleep(delay)

        # This timer has fired; forget it so rescheduling does not cancel it
        if self._tasks.get(complaint_id) is asyncio.current_task():
            del self._tasks[complaint_id]
            self._observed.pop(complaint_id, None)

        try:
            current = self.store.get(complaint_id)
            if current is None:
                logger.info("Complaint %s disappeared before auto-advance", complaint_id)
                return

            if current.status != observed:
                logger.info(
                    "Complaint %s moved from %s to %s independently; rescheduling",
                    complaint_id, observed.value, current.status.value,
                )
                self._schedule(complaint_id, current.status)
                return

            updated = await lifecycle.advance(self.store, complaint_id)
            if updated is not None:
                self._schedule(complaint_id, updated.status)
        except Exception:
            logger.exception("Auto-advance failed for complaint %s", complaint_id)


__all__ = ["AutoAdvancer", "DEFAULT_DELAYS", "delays_by_status"]
