from datetime import datetime, timedelta, timezone

import pytest

from water_tracker.lifecycle import STATUS_ORDER
from water_tracker.timeline import (
    completed_count,
    event_caption,
    format_timestamp,
    generate_timeline,
    short_id,
    status_info,
)

CREATED = datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)


def test_timeline_for_new_complaint():
    events = generate_timeline("pending", CREATED)

    assert [e.title for e in events] == [
        "Complaint Submitted",
        "Initial Assessment",
        "Maintenance Team Dispatched",
        "Issue Resolution",
    ]
    assert [e.is_completed for e in events] == [True, False, False, False]
    assert events[0].timestamp == CREATED
    assert events[1].timestamp == CREATED + timedelta(hours=2)
    assert events[2].timestamp == CREATED + timedelta(hours=26)
    assert events[3].timestamp == CREATED + timedelta(hours=74)


@pytest.mark.parametrize("status", [s.value for s in STATUS_ORDER])
def test_completed_milestones_form_a_prefix(status):
    flags = [e.is_completed for e in generate_timeline(status, CREATED)]

    count = completed_count(status)
    assert flags == [True] * count + [False] * (4 - count)


def test_completed_count_never_decreases_along_the_lifecycle():
    counts = [
        sum(e.is_completed for e in generate_timeline(status, CREATED))
        for status in STATUS_ORDER
    ]

    assert counts == [1, 2, 3, 4]


def test_timestamps_do_not_depend_on_status():
    pending = [e.timestamp for e in generate_timeline("pending", CREATED)]
    resolved = [e.timestamp for e in generate_timeline("resolved", CREATED)]

    assert pending == resolved


def test_projection_is_deterministic():
    assert generate_timeline("in-progress", CREATED) == generate_timeline("in-progress", CREATED)


def test_naive_created_at_is_treated_as_utc():
    naive = CREATED.replace(tzinfo=None)

    assert generate_timeline("pending", naive) == generate_timeline("pending", CREATED)


def test_serialized_events_use_camel_case_flag():
    payload = generate_timeline("under-review", CREATED)[1].model_dump(mode="json", by_alias=True)

    assert payload["isCompleted"] is True
    assert payload["title"] == "Initial Assessment"


def test_status_info_labels():
    assert status_info("pending")["label"] == "Pending Review"
    assert status_info("resolved") == {
        "status": "resolved",
        "label": "Resolved",
        "description": "The reported issue has been successfully resolved. Thank you for your report!",
    }


def test_display_helpers():
    assert short_id("3f1c2e7a-91b4-4c5e-8d6f-0123456789ab") == "3f1c2e7a"
    assert format_timestamp(CREATED) == "Mar 5, 02:30 PM"


def test_event_captions_follow_completion():
    events = generate_timeline("under-review", CREATED)

    assert [event_caption(e) for e in events] == [
        "Completed on Mar 5, 02:30 PM",
        "Completed on Mar 5, 04:30 PM",
        "Expected by Mar 6, 04:30 PM",
        "Expected by Mar 8, 04:30 PM",
    ]
