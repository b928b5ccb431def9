"""
Complaint lifecycle: pending -> under-review -> in-progress -> resolved.

Statuses only move forward one step at a time. `resolved` is terminal. The
store itself accepts any status, so every status change that should respect
the lifecycle goes through `advance` or `set_status` here.
"""

import logging
from typing import Optional, Tuple, Union

from .complaint_store import ComplaintStore
from .models import Complaint, ComplaintStatus

logger = logging.getLogger("water_tracker.lifecycle")

STATUS_ORDER: Tuple[ComplaintStatus, ...] = (
    ComplaintStatus.pending,
    ComplaintStatus.under_review,
    ComplaintStatus.in_progress,
    ComplaintStatus.resolved,
)

INITIAL_STATUS = STATUS_ORDER[0]
TERMINAL_STATUS = STATUS_ORDER[-1]


def _parse(status: Union[ComplaintStatus, str]) -> Optional[ComplaintStatus]:
    try:
        return ComplaintStatus(status)
    except ValueError:
        return None


def status_position(status: Union[ComplaintStatus, str]) -> int:
    """Index of the status in the lifecycle order."""
    return STATUS_ORDER.index(ComplaintStatus(status))


def is_terminal(status: Union[ComplaintStatus, str]) -> bool:
    return ComplaintStatus(status) == TERMINAL_STATUS


def next_status(status: Union[ComplaintStatus, str]) -> Optional[ComplaintStatus]:
    """The status one step after `status`, or None when it is terminal."""
    position = status_position(status)
    if position + 1 >= len(STATUS_ORDER):
        return None
    return STATUS_ORDER[position + 1]


def can_transition(
    old_status: Union[ComplaintStatus, str], new_status: Union[ComplaintStatus, str]
) -> Tuple[bool, int, str]:
    """Return (allowed, http_code, message) for the requested transition.

    - Returns (False, 400, msg) for unknown status values.
    - Returns (False, 409, msg) for skips and regressions.
    - Returns (True, 200, '') for a single forward step or re-applying the
      current status.
    """
    old = _parse(old_status)
    new = _parse(new_status)
    if old is None or new is None:
        allowed = ", ".join(s.value for s in STATUS_ORDER)
        bad = old_status if old is None else new_status
        return False, 400, f"Invalid status {bad!r}. Allowed: {allowed}"
    if new == old or new == next_status(old):
        return True, 200, ""
    return False, 409, f"Invalid status transition from {old.value} to {new.value}"


async def set_status(
    store: ComplaintStore, complaint_id: str, status: Union[ComplaintStatus, str]
) -> Optional[Complaint]:
    """Move a complaint to `status` if the lifecycle allows it.

    Returns the updated complaint, or None when the complaint does not exist
    or the transition is rejected.
    """
    complaint = store.get(complaint_id)
    if complaint is None:
        return None

    allowed, _, message = can_transition(complaint.status, status)
    if not allowed:
        logger.warning("Rejected status change for %s: %s", complaint_id, message)
        return None
    return await store.update_status(complaint_id, status)


async def advance(store: ComplaintStore, complaint_id: str) -> Optional[Complaint]:
    """Move a complaint one step forward; None if unknown or already resolved."""
    complaint = store.get(complaint_id)
    if complaint is None:
        return None

    target = next_status(complaint.status)
    if target is None:
        logger.debug("Complaint %s is already %s", complaint_id, complaint.status.value)
        return None
    return await store.update_status(complaint_id, target)


__all__ = [
    "STATUS_ORDER",
    "INITIAL_STATUS",
    "TERMINAL_STATUS",
    "status_position",
    "is_terminal",
    "next_status",
    "can_transition",
    "set_status",
    "advance",
]
