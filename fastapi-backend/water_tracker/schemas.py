"""Request and response bodies for the HTTP API."""

import base64
import binascii
import re
from typing import List, Optional

from email_validator import validate_email, EmailNotValidError
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import Complaint, ComplaintInput, ComplaintStatus, TimelineEvent

MAX_IMAGE_BYTES = 5 * 1024 * 1024

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def validate_image_reference(value: str) -> str:
    """Accept http(s) URLs and base64 `data:image/*` URIs of at most 5 MB."""
    if value.startswith(("http://", "https://")):
        return value

    match = _DATA_URI.match(value)
    if not match:
        raise ValueError("images must be http(s) URLs or base64 data URIs")
    if not match.group("mime").startswith("image/"):
        raise ValueError(f"{match.group('mime')} is not an image type")
    try:
        decoded = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("image data URI is not valid base64")
    if len(decoded) > MAX_IMAGE_BYTES:
        raise ValueError("image is too large (max 5MB)")
    return value


class ComplaintSubmission(ComplaintInput):
    """A complaint as posted by the submission form, with the form's rules applied."""

    @field_validator("title", "description")
    @classmethod
    def require_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("images")
    @classmethod
    def check_images(cls, v: List[str]) -> List[str]:
        return [validate_image_reference(item) for item in v]

    @model_validator(mode="after")
    def check_location_and_contact(self) -> "ComplaintSubmission":
        if not self.location.address.strip() and self.location.coordinates is None:
            raise ValueError("Please provide location details")

        contact = self.contact_details
        if not contact.name.strip():
            raise ValueError("Contact name is required")
        if not contact.phone.strip():
            raise ValueError("Contact phone number is required")
        try:
            contact.email = validate_email(contact.email, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValueError(f"Please enter a valid email address: {e}")
        return self


class SubmitResponse(BaseModel):
    complaint_id: str
    short_id: str
    tracking_url: str
    status: ComplaintStatus


class StatusInfo(BaseModel):
    status: ComplaintStatus
    label: str
    description: str


class ComplaintDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    complaint: Complaint
    short_id: str
    status_info: StatusInfo
    timeline: List[TimelineEvent]
    timeline_captions: List[str] = []
    completed_steps: int = 0
    auto_advance_scheduled: bool = False


class ComplaintList(BaseModel):
    items: List[Complaint]
    total: int


class StatusUpdateSchema(BaseModel):
    status: str


class AutoAdvanceState(BaseModel):
    complaint_id: str
    scheduled: bool
    observed_status: Optional[ComplaintStatus] = None


class ReverseGeocodeResponse(BaseModel):
    latitude: float
    longitude: float
    address: str


class Choice(BaseModel):
    value: str
    label: str = Field(..., description="Human readable label")
