from typing import Optional, List
from datetime import datetime, timezone
import enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlmodel import SQLModel, Field as SQLField


class ComplaintStatus(str, enum.Enum):
    pending = "pending"                # Submitted, awaiting review
    under_review = "under-review"      # Team is assessing the report
    in_progress = "in-progress"        # Maintenance dispatched
    resolved = "resolved"              # Terminal


class ComplaintCategory(str, enum.Enum):
    leak = "leak"
    quality = "quality"
    pressure = "pressure"
    drainage = "drainage"
    infrastructure = "infrastructure"
    service = "service"
    other = "other"


class ComplaintSeverity(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


CATEGORY_LABELS = {
    ComplaintCategory.leak: "Water Leak",
    ComplaintCategory.quality: "Water Quality Issue",
    ComplaintCategory.pressure: "Low Water Pressure",
    ComplaintCategory.drainage: "Drainage Problem",
    ComplaintCategory.infrastructure: "Infrastructure Damage",
    ComplaintCategory.service: "Service Disruption",
    ComplaintCategory.other: "Other",
}

SEVERITY_LABELS = {
    ComplaintSeverity.low: "Low - Not urgent, can be fixed when convenient",
    ComplaintSeverity.medium: "Medium - Should be addressed soon",
    ComplaintSeverity.high: "High - Needs prompt attention",
    ComplaintSeverity.critical: "Critical - Immediate action required",
}


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so comparisons never mix naive and aware values."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Location(BaseModel):
    address: str = ""
    coordinates: Optional[Coordinates] = None


class ContactDetails(BaseModel):
    name: str
    email: str
    phone: str


class ComplaintInput(BaseModel):
    """Everything a submitter provides; id, status and timestamps are store-assigned."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str
    category: ComplaintCategory
    severity: ComplaintSeverity
    location: Location = Field(default_factory=Location)
    images: List[str] = Field(default_factory=list)
    contact_details: ContactDetails = Field(alias="contactDetails")


class Complaint(ComplaintInput):
    # Records change only through the store, which swaps in updated copies
    model_config = ConfigDict(frozen=True)

    id: str
    status: ComplaintStatus = ComplaintStatus.pending
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_updated_after_created(self) -> "Complaint":
        if self.updated_at < self.created_at:
            raise ValueError("updatedAt must not be earlier than createdAt")
        return self


class TimelineEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str
    description: str
    timestamp: datetime
    is_completed: bool = Field(alias="isCompleted")


class StorageEntry(SQLModel, table=True):
    """One namespaced text value in the durable key-value store."""

    __tablename__ = "kv_entries"
    key: str = SQLField(primary_key=True)
    value: str
    updated_at: Optional[datetime] = SQLField(default_factory=utcnow)
