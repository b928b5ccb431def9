"""Async HTTP client for the Water Complaint API.

Used by front ends and scripts that talk to a running backend. The base URL
comes from the `BACKEND_URL` environment variable (e.g.
http://localhost:8000). Network errors and 5xx responses are retried with
exponential backoff; 4xx responses are not retried.

Public API:
- submit_complaint(data: dict) -> dict
- get_complaint(complaint_id: str) -> dict | None
- get_complaint_status(complaint_id: str) -> str | None
- list_complaints(status: str | None = None, newest_first: bool = False) -> dict
- reverse_geocode(latitude: float, longitude: float) -> str
"""

from __future__ import annotations

import os
import asyncio
import logging
import random
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")

# HTTP client defaults
_DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)
_MAX_RETRIES = 3
_BACKOFF_FACTOR = 0.5

# Reuse a global client for connection pooling
_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT)
    return _client


def _url(path: str) -> str:
    return BACKEND_URL.rstrip("/") + path


def _is_retryable(exc: Exception) -> bool:
    # network errors are retryable; 5xx responses are retryable
    if isinstance(exc, httpx.RequestError):
        return True
    if isinstance(exc, httpx.HTTPStatusError) and 500 <= exc.response.status_code < 600:
        return True
    return False


async def _attempt_request(method: str, url: str, **kwargs) -> httpx.Response:
    last_exc: Optional[Exception] = None
    for attempt in range(1, _MAX_RETRIES + 1):
        try:
            resp = await _get_client().request(method, url, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPError as exc:
            last_exc = exc
            if attempt == _MAX_RETRIES or not _is_retryable(exc):
                logger.warning("Request to %s failed (attempt %s/%s): %s", url, attempt, _MAX_RETRIES, exc)
                break
            backoff = _BACKOFF_FACTOR * (2 ** (attempt - 1))
            jitter = random.uniform(0, backoff * 0.1)
            sleep_time = backoff + jitter
            logger.info("Retrying %s in %.2fs (attempt %s/%s)", url, sleep_time, attempt + 1, _MAX_RETRIES)
            await asyncio.sleep(sleep_time)

    raise last_exc if last_exc is not None else RuntimeError("Request failed without exception")


async def submit_complaint(data: Dict[str, Any]) -> Dict[str, Any]:
    """Submit a complaint; returns at least `complaint_id` and `tracking_url`."""
    resp = await _attempt_request("POST", _url("/api/v1/complaints/submit"), json=data)
    return resp.json()


async def get_complaint(complaint_id: str) -> Optional[Dict[str, Any]]:
    """Fetch a complaint with its timeline, or None if the backend does not know it."""
    try:
        resp = await _attempt_request("GET", _url(f"/api/v1/complaints/{complaint_id}"))
    except httpx.HTTPStatusError as exc:
        if exc.response.status_code == 404:
            return None
        raise
    return resp.json()


async def get_complaint_status(complaint_id: str) -> Optional[str]:
    detail = await get_complaint(complaint_id)
    if detail is None:
        return None
    return detail["complaint"]["status"]


async def list_complaints(status: Optional[str] = None, newest_first: bool = False) -> Dict[str, Any]:
    params: Dict[str, Any] = {"newest_first": str(newest_first).lower()}
    if status:
        params["status"] = status
    resp = await _attempt_request("GET", _url("/api/v1/complaints"), params=params)
    return resp.json()


async def reverse_geocode(latitude: float, longitude: float) -> str:
    resp = await _attempt_request(
        "GET", _url("/api/v1/geocode/reverse"), params={"lat": latitude, "lon": longitude}
    )
    return resp.json()["address"]


# Small convenience for manual testing
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    demo = {
        "title": "Burst main on Elm Street",
        "description": "Water has been gushing from the pavement since this morning.",
        "category": "leak",
        "severity": "high",
        "location": {"address": "12 Elm Street", "coordinates": None},
        "images": [],
        "contactDetails": {"name": "Demo User", "email": "demo@example.com", "phone": "+15550100"},
    }

    async def main():
        created = await submit_complaint(demo)
        print(created)
        print(await get_complaint_status(created["complaint_id"]))

    asyncio.run(main())
