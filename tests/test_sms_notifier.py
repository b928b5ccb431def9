import json
from dataclasses import replace

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from httpx import Response

from water_tracker.main import create_app
from water_tracker.sms_notifier import (
    RateLimiter,
    SmsNotifier,
    format_submission_message,
    tracking_url,
)

SMS_URL = "http://sms-gateway.test/messages"


@pytest.fixture
def sms_settings(settings):
    return replace(
        settings,
        public_base_url="http://tracker.test",
        sms_api_url=SMS_URL,
        sms_api_key="sms-key-123",
        sms_sender_id="WATERCO",
        sms_rate_limit_per_minute=10,
    )


def test_tracking_url_and_message():
    url = tracking_url("http://tracker.test/", "abc-123")

    assert url == "http://tracker.test/alert/abc-123"
    assert format_submission_message("abc-123", url) == (
        "Your complaint has been registered with ID: abc-123. "
        "Track your complaint at: http://tracker.test/alert/abc-123"
    )


def test_rate_limiter_caps_requests():
    limiter = RateLimiter(max_requests=2)

    assert [limiter.is_allowed() for _ in range(3)] == [True, True, False]


@pytest.mark.asyncio
async def test_send_submission_notice_posts_to_gateway(sms_settings):
    notifier = SmsNotifier(sms_settings)
    async with respx.mock() as respx_mock:
        route = respx_mock.post(SMS_URL).mock(return_value=Response(202, json={"id": "m-1"}))

        sent = await notifier.send_submission_notice("abc-123", " +15550100 ")

    await notifier.aclose()
    assert sent is True
    assert route.called
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer sms-key-123"
    body = json.loads(request.content)
    assert body["to"] == "+15550100"
    assert body["from"] == "WATERCO"
    assert "http://tracker.test/alert/abc-123" in body["message"]


@pytest.mark.asyncio
async def test_disabled_notifier_sends_nothing(settings):
    notifier = SmsNotifier(settings)

    assert notifier.get_config()["enabled"] is False
    assert await notifier.send_submission_notice("abc-123", "+15550100") is False


@pytest.mark.asyncio
async def test_missing_phone_is_skipped(sms_settings):
    notifier = SmsNotifier(sms_settings)

    assert await notifier.send_submission_notice("abc-123", "  ") is False


@pytest.mark.asyncio
async def test_gateway_errors_are_logged_not_raised(sms_settings, caplog):
    notifier = SmsNotifier(sms_settings)
    async with respx.mock() as respx_mock:
        respx_mock.post(SMS_URL).mock(return_value=Response(500, text="boom"))
        assert await notifier.send_submission_notice("abc-123", "+15550100") is False

        respx_mock.post(SMS_URL).mock(side_effect=httpx.ConnectError("unreachable"))
        assert await notifier.send_submission_notice("abc-123", "+15550100") is False

    await notifier.aclose()
    assert "Failed to send SMS notification" in caplog.text


@pytest.mark.asyncio
async def test_rate_limited_notices_are_dropped(sms_settings):
    notifier = SmsNotifier(replace(sms_settings, sms_rate_limit_per_minute=1))
    async with respx.mock() as respx_mock:
        route = respx_mock.post(SMS_URL).mock(return_value=Response(200))

        first = await notifier.send_submission_notice("a", "+15550100")
        second = await notifier.send_submission_notice("b", "+15550100")

    await notifier.aclose()
    assert (first, second) == (True, False)
    assert route.call_count == 1


def test_submission_triggers_sms(sms_settings, storage, complaint_data):
    with respx.mock(assert_all_called=False) as respx_mock:
        route = respx_mock.post(SMS_URL).mock(return_value=Response(200))

        with TestClient(create_app(settings=sms_settings, storage=storage)) as client:
            resp = client.post("/api/v1/complaints/submit", json=complaint_data)

    assert resp.status_code == 201
    assert route.called
    body = json.loads(route.calls.last.request.content)
    assert body["to"] == "+15550100"
    assert resp.json()["complaint_id"] in body["message"]
