from __future__ import annotations

import enum
import hashlib
import uuid
from datetime import date
from decimal import Decimal
from functools import cached_property

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Platform(str, enum.Enum):
    AIRBNB = "airbnb"
    BOOKING = "booking"
    EXPEDIA = "expedia"
    VRBO = "vrbo"
    DIRECT = "direct"
    OTHER = "other"


class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    filename: str = "upload.bin"
    content_type: str | None = None
    body: bytes = Field(repr=False)

    @cached_property
    def sha256(self) -> str:
        return hashlib.sha256(self.body).hexdigest()


class ExtractedReservation(BaseModel):
    """One reservation fragment as read from a document (or one row of a control file)."""

    model_config = ConfigDict(frozen=True)

    guest_name: str | None = None
    property_name_raw: str | None = None
    check_in_date: date | None = None
    check_out_date: date | None = None
    num_guests: int | None = None
    total_amount: Decimal | None = None
    platform: Platform | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    reference: str | None = None
    confidence: float = 0.0
    source_document_id: str
    source_page: int | None = None

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(1.0, float(value)))
