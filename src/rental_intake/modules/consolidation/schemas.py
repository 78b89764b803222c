from __future__ import annotations

import hashlib
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, computed_field

from rental_intake.modules.extraction.schemas import ExtractedReservation, Platform
from rental_intake.modules.matching.schemas import NO_MATCH, MatchResult


class FieldConflict(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    kept: str
    discarded: str
    kept_source: str
    discarded_source: str


class ConsolidatedReservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    guest_name: str | None = None
    property_name_raw: str | None = None
    property_id: int | str | None = None
    match: MatchResult = NO_MATCH
    check_in_date: date | None = None
    check_out_date: date | None = None
    num_guests: int | None = None
    total_amount: Decimal | None = None
    platform: Platform | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    reference: str | None = None
    confidence: float = 0.0
    source_records: tuple[ExtractedReservation, ...] = ()
    conflicts: tuple[FieldConflict, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def candidate_id(self) -> str:
        """Stable identifier derived from the source fragments."""
        parts = sorted(
            f"{r.source_document_id}:{r.source_page or 0}:{r.guest_name or ''}:"
            f"{r.check_in_date or ''}:{r.check_out_date or ''}"
            for r in self.source_records
        )
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]

    @property
    def is_merged(self) -> bool:
        return len(self.source_records) > 1

    @property
    def source_document_ids(self) -> list[str]:
        return sorted({r.source_document_id for r in self.source_records})
