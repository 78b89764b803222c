from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from rental_intake.modules.classification.schemas import DocumentType
from rental_intake.modules.consolidation.schemas import ConsolidatedReservation
from rental_intake.modules.extraction.schemas import ExtractedReservation
from rental_intake.modules.matching.schemas import MatchSuggestion
from rental_intake.modules.validation.schemas import ValidationResult


class DocumentStatus(str, enum.Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DocumentOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    status: DocumentStatus
    document_type: DocumentType = DocumentType.UNKNOWN
    ambiguous: bool = False
    records: tuple[ExtractedReservation, ...] = ()
    attempts: int = 0
    cached: bool = False
    error: str | None = None
    error_transient: bool = False
    duration_ms: int = 0


class BatchFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    reason: str
    attempts: int = 0
    transient: bool = False


class ReservationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    reservation: ConsolidatedReservation
    validation: ValidationResult


class UnmatchedName(BaseModel):
    model_config = ConfigDict(frozen=True)

    property_name_raw: str
    occurrences: int
    suggestions: list[MatchSuggestion] = []


class BatchSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    documents_total: int = 0
    documents_processed: int = 0
    documents_failed: int = 0
    documents_skipped: int = 0
    reservations_total: int = 0
    valid_count: int = 0
    incomplete_count: int = 0
    invalid_count: int = 0
    matched_count: int = 0
    unmatched_count: int = 0
    # Percentage of reservations linked to a catalog property.
    match_rate: float = 0.0
    unmatched_names: list[UnmatchedName] = []
    cancelled: bool = False


class BatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: str
    catalog_loaded_at: datetime
    per_document: list[DocumentOutcome] = []
    consolidated: list[ReservationReport] = []
    failures: list[BatchFailure] = []
    summary: BatchSummary = BatchSummary()
