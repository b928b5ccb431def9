import asyncio

import pytest

from water_tracker.auto_advancer import AutoAdvancer, delays_by_status
from water_tracker.models import ComplaintStatus
from water_tracker.timeline import generate_timeline

FAST = (0.01, 0.01, 0.01)


async def _wait_until_idle(advancer, complaint_id, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while advancer.is_scheduled(complaint_id):
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("auto-advancer did not finish in time")
        await asyncio.sleep(0.01)


def test_default_delays_map_onto_statuses():
    delays = delays_by_status((10, 15, 20))

    assert delays == {
        ComplaintStatus.pending: 10,
        ComplaintStatus.under_review: 15,
        ComplaintStatus.in_progress: 20,
    }


def test_wrong_number_of_delays_is_rejected():
    with pytest.raises(ValueError):
        delays_by_status((1, 2))


@pytest.mark.asyncio
async def test_advances_through_every_status_then_goes_idle(store, complaint_input):
    complaint_id = await store.create(complaint_input)
    seen = []

    async def record(complaint, old_status):
        if old_status is not None:
            seen.append(complaint.status)

    store.add_listener(record)
    advancer = AutoAdvancer(store, delays=FAST)

    assert advancer.start(complaint_id) is True
    assert advancer.observed_status(complaint_id) == ComplaintStatus.pending
    await _wait_until_idle(advancer, complaint_id)

    complaint = store.get(complaint_id)
    assert complaint.status == ComplaintStatus.resolved
    assert seen == [
        ComplaintStatus.under_review,
        ComplaintStatus.in_progress,
        ComplaintStatus.resolved,
    ]
    assert all(e.is_completed for e in generate_timeline(complaint.status, complaint.created_at))
    assert advancer.scheduled_ids() == []


@pytest.mark.asyncio
async def test_start_on_resolved_or_unknown_complaint_schedules_nothing(store, complaint_input):
    complaint_id = await store.create(complaint_input)
    await store.update_status(complaint_id, "resolved")
    advancer = AutoAdvancer(store, delays=FAST)

    assert advancer.start(complaint_id) is False
    assert advancer.start("nonexistent-id") is False
    assert advancer.scheduled_ids() == []


@pytest.mark.asyncio
async def test_cancel_prevents_the_pending_transition(store, complaint_input):
    complaint_id = await store.create(complaint_input)
    advancer = AutoAdvancer(store, delays=(0.05, 0.05, 0.05))

    advancer.start(complaint_id)
    assert advancer.cancel(complaint_id) is True
    await asyncio.sleep(0.1)

    assert store.get(complaint_id).status == ComplaintStatus.pending
    assert not advancer.is_scheduled(complaint_id)
    assert advancer.cancel(complaint_id) is False


@pytest.mark.asyncio
async def test_timer_rereads_status_before_applying(store, complaint_input):
    complaint_id = await store.create(complaint_input)
    advancer = AutoAdvancer(store, delays=(0.05, 10, 10))

    advancer.start(complaint_id)
    # Someone else moves the complaint before the timer fires
    await store.update_status(complaint_id, "under-review")
    await asyncio.sleep(0.1)

    # The stale pending timer must not push it on to in-progress
    assert store.get(complaint_id).status == ComplaintStatus.under_review
    assert advancer.observed_status(complaint_id) == ComplaintStatus.under_review
    await advancer.shutdown()


@pytest.mark.asyncio
async def test_timer_for_removed_complaint_is_a_noop(store, complaint_input):
    complaint_id = await store.create(complaint_input)
    advancer = AutoAdvancer(store, delays=FAST)

    advancer.start(complaint_id)
    await store.clear()
    await asyncio.sleep(0.05)

    assert store.get(complaint_id) is None
    assert advancer.scheduled_ids() == []


@pytest.mark.asyncio
async def test_start_twice_keeps_a_single_timer(store, complaint_input):
    complaint_id = await store.create(complaint_input)
    advancer = AutoAdvancer(store, delays=(0.05, 10, 10))

    advancer.start(complaint_id)
    advancer.start(complaint_id)
    await asyncio.sleep(0.1)

    assert store.get(complaint_id).status == ComplaintStatus.under_review
    assert advancer.scheduled_ids() == [complaint_id]
    await advancer.shutdown()
    assert advancer.scheduled_ids() == []


@pytest.mark.asyncio
async def test_storage_failure_is_logged_and_stops_the_driver(store, storage, complaint_input, caplog):
    complaint_id = await store.create(complaint_input)

    async def broken_set(key, value):
        raise OSError("disk full")

    storage.set = broken_set
    advancer = AutoAdvancer(store, delays=FAST)
    advancer.start(complaint_id)
    await asyncio.sleep(0.05)

    assert "Auto-advance failed" in caplog.text
    assert advancer.scheduled_ids() == []
    assert store.get(complaint_id).status == ComplaintStatus.pending
