"""Progress timeline shown on the tracking page.

The timeline is derived from a complaint's status and creation time every
time it is requested and is never stored.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Union

from .lifecycle import status_position
from .models import ComplaintStatus, TimelineEvent, ensure_utc

ASSESSMENT_DELAY = timedelta(hours=2)
DISPATCH_DELAY = timedelta(hours=24)
RESOLUTION_DELAY = timedelta(hours=48)

# (title, description, offset from the previous milestone)
MILESTONES = (
    (
        "Complaint Submitted",
        "Your water issue report has been successfully submitted to our system.",
        timedelta(0),
    ),
    (
        "Initial Assessment",
        "Our team will review your complaint and assess its severity and priority.",
        ASSESSMENT_DELAY,
    ),
    (
        "Maintenance Team Dispatched",
        "A team will be sent to inspect and address the reported issue.",
        DISPATCH_DELAY,
    ),
    (
        "Issue Resolution",
        "The water issue will be fixed and the complaint will be marked as resolved.",
        RESOLUTION_DELAY,
    ),
)

STATUS_INFO: Dict[ComplaintStatus, Dict[str, str]] = {
    ComplaintStatus.pending: {
        "label": "Pending Review",
        "description": "Your complaint has been received and is awaiting review by our team.",
    },
    ComplaintStatus.under_review: {
        "label": "Under Review",
        "description": "Our team is currently reviewing your complaint and assessing the next steps.",
    },
    ComplaintStatus.in_progress: {
        "label": "In Progress",
        "description": "Maintenance team has been dispatched and is working to resolve the issue.",
    },
    ComplaintStatus.resolved: {
        "label": "Resolved",
        "description": "The reported issue has been successfully resolved. Thank you for your report!",
    },
}


def generate_timeline(
    status: Union[ComplaintStatus, str], created_at: datetime
) -> List[TimelineEvent]:
    """Build the four milestones for a complaint.

    Milestone N (0-based) is completed when the status is at position N or
    later in the lifecycle, so the submission milestone is always completed.
    Timestamps are estimates for milestones that are not completed yet.
    """
    reached = status_position(status)
    timestamp = ensure_utc(created_at)
    events = []
    for index, (title, description, offset) in enumerate(MILESTONES):
        timestamp = timestamp + offset
        events.append(
            TimelineEvent(
                title=title,
                description=description,
                timestamp=timestamp,
                is_completed=index <= reached,
            )
        )
    return events


def completed_count(status: Union[ComplaintStatus, str]) -> int:
    return status_position(status) + 1


def status_info(status: Union[ComplaintStatus, str]) -> Dict[str, str]:
    status = ComplaintStatus(status)
    return {"status": status.value, **STATUS_INFO[status]}


def format_timestamp(value: datetime) -> str:
    """Render like 'Mar 5, 02:30 PM'."""
    return f"{value:%b} {value.day}, {value:%I:%M %p}"


def event_caption(event: TimelineEvent) -> str:
    """Caption shown under a milestone on the tracking page."""
    prefix = "Completed on" if event.is_completed else "Expected by"
    return f"{prefix} {format_timestamp(event.timestamp)}"


def short_id(complaint_id: str) -> str:
    """First 8 characters of an id, for display only; lookups use the full id."""
    return complaint_id[:8]


__all__ = [
    "MILESTONES",
    "STATUS_INFO",
    "generate_timeline",
    "completed_count",
    "status_info",
    "format_timestamp",
    "event_caption",
    "short_id",
]
