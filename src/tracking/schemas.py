"""DTOs and validation for the tracking microservice."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_BULK_ITEMS = 50


class CanonicalStatus(str, Enum):
    PENDING = "PENDING"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    EXCEPTION = "EXCEPTION"
    RETURNED = "RETURNED"


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TrackingEvent(BaseModel):
    """One scan event as reported by a carrier. Immutable once received."""

    model_config = ConfigDict(frozen=True)

    carrier: str
    timestamp: datetime
    status: str = Field(..., description="Carrier free-text status")
    location: Optional[str] = None
    description: Optional[str] = None
    delivery_date: Optional[datetime] = None
    signed_by: Optional[str] = None

    @field_validator("timestamp", "delivery_date")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)


class TrackingHistoryRecord(BaseModel):
    """Snapshot of every event observed by one aggregator run. Never mutated."""

    model_config = ConfigDict(frozen=True)

    tracking_number: str
    carrier: str
    events: tuple[TrackingEvent, ...]
    status: Optional[CanonicalStatus] = None
    recorded_at: datetime


def _strip_required(v: str) -> str:
    value = str(v or "").strip()
    if not value:
        raise ValueError("tracking_number is required")
    return value


def _normalize_carrier(v: str | None) -> str | None:
    if v is None:
        return None
    value = str(v).strip().lower()
    return value or None


class TrackRequest(BaseModel):
    tracking_number: str = Field(..., description="Carrier tracking number")
    carrier: Optional[str] = Field(None, description="Carrier id (fedex, ups, dhl). Optional: discovered when omitted.")

    @field_validator("tracking_number", mode="before")
    @classmethod
    def validate_tracking_number(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("carrier", mode="before")
    @classmethod
    def validate_carrier(cls, v: str | None) -> str | None:
        return _normalize_carrier(v)


class BulkTrackRequest(BaseModel):
    """Items are validated one by one when tracked, so a bad item only fails its own slot."""

    tracking_numbers: List[Any] = Field(..., min_length=1, max_length=MAX_BULK_ITEMS)


def as_track_request(item: Any) -> TrackRequest:
    """Bulk items may be a bare tracking number or an object with tracking_number and carrier."""
    if isinstance(item, TrackRequest):
        return item
    if isinstance(item, dict):
        return TrackRequest.model_validate(item)
    return TrackRequest(tracking_number=item)


def raw_tracking_number(item: Any) -> str:
    if isinstance(item, TrackRequest):
        return item.tracking_number
    if isinstance(item, dict):
        return str(item.get("tracking_number") or "")
    return str(item or "")
