from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from water_tracker.complaint_store import ComplaintStore
from water_tracker.config import get_settings
from water_tracker.main import create_app
from water_tracker.models import ComplaintInput
from water_tracker.storage import MemoryKeyValueStorage


class FakeClock:
    """Deterministic clock; each call returns the current value, `tick` moves it."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def tick(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc))


@pytest.fixture
def storage():
    return MemoryKeyValueStorage()


@pytest_asyncio.fixture
async def store(storage, clock):
    s = ComplaintStore(storage, clock=clock)
    await s.load()
    return s


@pytest.fixture
def complaint_data():
    return {
        "title": "Burst pipe on Elm Street",
        "description": "Water is flooding the pavement outside number 12.",
        "category": "leak",
        "severity": "critical",
        "location": {"address": "12 Elm Street, Springfield", "coordinates": None},
        "images": [],
        "contactDetails": {
            "name": "Jordan Reyes",
            "email": "jordan@example.com",
            "phone": "+15550100",
        },
    }


@pytest.fixture
def complaint_input(complaint_data):
    return ComplaintInput.model_validate(complaint_data)


@pytest.fixture
def settings():
    return replace(get_settings(), auto_advance_enabled=False, sms_api_url=None)


@pytest.fixture(name="client")
def client_fixture(settings, storage):
    app = create_app(settings=settings, storage=storage)
    with TestClient(app) as client:
        yield client
