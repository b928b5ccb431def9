"""
SMS confirmation sent to the submitter after a complaint is registered.

Delivery is best effort: the complaint already exists when the message is
sent, so failures are logged and counted but never raised to the caller.
"""
import logging
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone

import httpx
from pydantic import BaseModel

from .config import Settings
from .observability import sms_notifications_total

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(15.0, connect=5.0)


class NotificationConfig(BaseModel):
    """Configuration for notification settings."""
    enabled: bool = True
    api_url: Optional[str] = None
    sender_id: Optional[str] = None
    rate_limit_per_minute: int = 10


class RateLimiter:
    """Simple sliding-window rate limiter for notifications."""

    def __init__(self, max_requests: int = 10, time_window_minutes: int = 1):
        self.max_requests = max_requests
        self.time_window_minutes = time_window_minutes
        self.requests: List[datetime] = []

    def is_allowed(self) -> bool:
        """Check if a request is allowed based on rate limiting."""
        now = datetime.now(timezone.utc)

        # Remove old requests outside the time window
        cutoff = now.timestamp() - (self.time_window_minutes * 60)
        self.requests = [req for req in self.requests if req.timestamp() > cutoff]

        if len(self.requests) >= self.max_requests:
            return False

        self.requests.append(now)
        return True


def tracking_url(public_base_url: str, complaint_id: str) -> str:
    return f"{public_base_url.rstrip('/')}/alert/{complaint_id}"


def format_submission_message(complaint_id: str, url: str) -> str:
    return (
        f"Your complaint has been registered with ID: {complaint_id}. "
        f"Track your complaint at: {url}"
    )


class SmsNotifier:
    """Posts `{to, message}` to the configured SMS gateway."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.public_base_url = settings.public_base_url
        self.api_key = settings.sms_api_key
        self.config = NotificationConfig(
            enabled=bool(settings.sms_api_url),
            api_url=settings.sms_api_url,
            sender_id=settings.sms_sender_id,
            rate_limit_per_minute=settings.sms_rate_limit_per_minute,
        )
        self.rate_limiter = RateLimiter(max_requests=settings.sms_rate_limit_per_minute)
        self._client = client
        self._owns_client = client is None

        if not self.config.enabled:
            logger.warning("SMS_API_URL not configured. SMS notifications disabled.")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT)
        return self._client

    async def send_submission_notice(self, complaint_id: str, phone: str) -> bool:
        """Text the tracking link for a new complaint. Returns True if accepted."""
        if not self.config.enabled or not self.config.api_url:
            logger.debug("SMS notifications disabled; skipping %s", complaint_id)
            sms_notifications_total.labels(outcome="disabled").inc()
            return False

        if not phone or not phone.strip():
            logger.warning("No phone number for complaint %s; SMS skipped", complaint_id)
            sms_notifications_total.labels(outcome="skipped").inc()
            return False

        if not self.rate_limiter.is_allowed():
            logger.warning("Rate limit exceeded for SMS notifications")
            sms_notifications_total.labels(outcome="rate_limited").inc()
            return False

        url = tracking_url(self.public_base_url, complaint_id)
        payload: Dict[str, Any] = {
            "to": phone.strip(),
            "message": format_submission_message(complaint_id, url),
        }
        if self.config.sender_id:
            payload["from"] = self.config.sender_id
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            resp = await self._get_client().post(self.config.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send SMS notification for {complaint_id}: {e}")
            sms_notifications_total.labels(outcome="failed").inc()
            return False

        if not resp.is_success:
            logger.error(
                "Failed to send SMS notification for %s: HTTP %s %s",
                complaint_id, resp.status_code, resp.text,
            )
            sms_notifications_total.labels(outcome="failed").inc()
            return False

        logger.info(f"Sent SMS notification for complaint: {complaint_id}")
        sms_notifications_total.labels(outcome="sent").inc()
        return True

    def get_config(self) -> Dict[str, Any]:
        """Get current notification configuration."""
        return self.config.model_dump()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
