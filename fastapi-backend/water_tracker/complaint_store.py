"""
Complaint store: the single in-process collection of complaints.

The collection is kept in insertion order and written as one JSON document
under a fixed key of the configured key-value storage after every mutation.
It is a convenience cache rather than a system of record, so a corrupt payload
on load is logged and replaced by an empty collection.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from .models import Complaint, ComplaintInput, ComplaintStatus, utcnow
from .storage import KeyValueStorage

logger = logging.getLogger("water_tracker.store")

DEFAULT_STORAGE_KEY = "complaints"
_MAX_ID_ATTEMPTS = 5

ChangeListener = Callable[[Complaint, Optional[ComplaintStatus]], Awaitable[None]]


class ComplaintStore:
    """Create/read/update access to complaints, persisted on every mutation."""

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = DEFAULT_STORAGE_KEY,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.storage = storage
        self.key = key
        self._clock = clock
        self._id_factory = id_factory
        # dicts keep insertion order, which is the creation order users see
        self._complaints: Dict[str, Complaint] = {}
        self._write_lock = asyncio.Lock()
        self._listeners: List[ChangeListener] = []

    def __len__(self) -> int:
        return len(self._complaints)

    def __contains__(self, complaint_id: object) -> bool:
        return complaint_id in self._complaints

    async def load(self) -> int:
        """Replace the in-memory collection with what storage holds.

        Returns the number of complaints restored.
        """
        raw = await self.storage.get(self.key)
        self._complaints = {}
        if raw is None:
            logger.info("No saved complaints under key %r; starting empty", self.key)
            return 0

        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                raise ValueError(f"expected a JSON array, got {type(items).__name__}")
            restored = [Complaint.model_validate(item) for item in items]
        except (ValueError, TypeError, ValidationError) as exc:
            # json.JSONDecodeError is a ValueError subclass
            logger.error("Error parsing saved complaints, starting empty: %s", exc)
            return 0

        for complaint in restored:
            if complaint.id in self._complaints:
                logger.warning("Skipping duplicate saved complaint id %s", complaint.id)
                continue
            self._complaints[complaint.id] = complaint

        logger.info("Restored %d complaints from storage", len(self._complaints))
        return len(self._complaints)

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a coroutine called with (complaint, old_status) after each change.

        `old_status` is None when the complaint was just created.
        """
        self._listeners.append(listener)

    def get(self, complaint_id: str) -> Optional[Complaint]:
        return self._complaints.get(complaint_id)

    def list(
        self,
        status: Optional[ComplaintStatus] = None,
        newest_first: bool = False,
    ) -> List[Complaint]:
        items = list(self._complaints.values())
        if status is not None:
            items = [c for c in items if c.status == ComplaintStatus(status)]
        if newest_first:
            items.reverse()
        return items

    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ComplaintStatus}
        for complaint in self._complaints.values():
            counts[complaint.status.value] += 1
        return counts

    async def create(self, data: ComplaintInput) -> str:
        complaint_id = self._new_id()
        now = self._clock()
        complaint = Complaint(
            **data.model_dump(),
            id=complaint_id,
            status=ComplaintStatus.pending,
            created_at=now,
            updated_at=now,
        )
        self._complaints[complaint_id] = complaint
        try:
            await self._persist()
        except Exception:
            self._complaints.pop(complaint_id, None)
            raise
        logger.info("Created complaint %s (category=%s, severity=%s)",
                    complaint_id, complaint.category.value, complaint.severity.value)
        await self._notify(complaint, None)
        return complaint_id

    async def update_status(
        self, complaint_id: str, new_status: Union[ComplaintStatus, str]
    ) -> Optional[Complaint]:
        """Overwrite the status of a complaint and stamp `updated_at`.

        Unknown ids are ignored and return None. The transition itself is not
        checked here; `lifecycle` is responsible for forward-only movement.
        """
        current = self._complaints.get(complaint_id)
        if current is None:
            logger.debug("Ignoring status update for unknown complaint %s", complaint_id)
            return None

        status = ComplaintStatus(new_status)
        updated = current.model_copy(
            update={
                "status": status,
                "updated_at": max(self._clock(), current.created_at),
            }
        )
        self._complaints[complaint_id] = updated
        try:
            await self._persist()
        except Exception:
            if self._complaints.get(complaint_id) is updated:
                self._complaints[complaint_id] = current
            raise
        logger.info("Complaint %s status %s -> %s",
                    complaint_id, current.status.value, status.value)
        await self._notify(updated, current.status)
        return updated

    async def clear(self) -> None:
        previous, self._complaints = self._complaints, {}
        try:
            await self._persist()
        except Exception:
            self._complaints = previous
            raise
        logger.info("Cleared all complaints")

    def _new_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate not in self._complaints:
                return candidate
            logger.warning("Generated duplicate complaint id %s; retrying", candidate)
        raise RuntimeError("Could not generate a unique complaint id")

    def _serialize(self) -> str:
        return json.dumps(
            [c.model_dump(mode="json", by_alias=True) for c in self._complaints.values()]
        )

    async def _persist(self) -> None:
        # Snapshot before awaiting so the written document is never half-updated;
        # the lock keeps snapshots landing in the order they were taken.
        snapshot = self._serialize()
        async with self._write_lock:
            await self.storage.set(self.key, snapshot)

    async def _notify(self, complaint: Complaint, old_status: Optional[ComplaintStatus]) -> None:
        for listener in self._listeners:
            try:
                await listener(complaint, old_status)
            except Exception:
                logger.exception("Complaint change listener failed for %s", complaint.id)


__all__ = ["ComplaintStore", "ChangeListener", "DEFAULT_STORAGE_KEY"]
