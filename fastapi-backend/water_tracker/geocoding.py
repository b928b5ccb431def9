"""Reverse geocoding of reporter coordinates into a street address.

Uses the Nominatim `reverse` endpoint. Any failure (network, HTTP error, bad
payload) falls back to the plain "latitude, longitude" string so a submission
never blocks on address lookup.
"""

import logging
from typing import Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


def coordinates_label(latitude: float, longitude: float) -> str:
    return f"{latitude}, {longitude}"


class ReverseGeocoder:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.url = settings.geocoder_url
        self.user_agent = settings.geocoder_user_agent
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT)
        return self._client

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        params = {
            "format": "json",
            "lat": latitude,
            "lon": longitude,
            "zoom": 18,
            "addressdetails": 1,
        }
        try:
            resp = await self._get_client().get(
                self.url, params=params, headers={"User-Agent": self.user_agent}
            )
            resp.raise_for_status()
            address = resp.json().get("display_name")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.error("Error fetching address for %s,%s: %s", latitude, longitude, exc)
            return coordinates_label(latitude, longitude)

        if not address:
            logger.info("No address found for %s,%s", latitude, longitude)
            return coordinates_label(latitude, longitude)
        return address

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


__all__ = ["ReverseGeocoder", "coordinates_label"]
