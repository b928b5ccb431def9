"""Common FastAPI dependencies.

Services are built once in the application lifespan and stored on
`app.state`; routes receive them through these helpers.
"""

from fastapi import Depends, HTTPException, Request

from .auto_advancer import AutoAdvancer
from .complaint_store import ComplaintStore
from .geocoding import ReverseGeocoder
from .models import Complaint
from .sms_notifier import SmsNotifier
from .websocket_manager import ConnectionManager


def get_store(request: Request) -> ComplaintStore:
    return request.app.state.store


def get_advancer(request: Request) -> AutoAdvancer:
    return request.app.state.advancer


def get_notifier(request: Request) -> SmsNotifier:
    return request.app.state.notifier


def get_geocoder(request: Request) -> ReverseGeocoder:
    return request.app.state.geocoder


def get_connections(request: Request) -> ConnectionManager:
    return request.app.state.connections


def get_complaint_or_404(
    complaint_id: str, store: ComplaintStore = Depends(get_store)
) -> Complaint:
    complaint = store.get(complaint_id)
    if complaint is None:
        raise HTTPException(status_code=404, detail="Not found")
    return complaint


__all__ = [
    "get_store",
    "get_advancer",
    "get_notifier",
    "get_geocoder",
    "get_connections",
    "get_complaint_or_404",
]
