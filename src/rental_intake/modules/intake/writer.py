from __future__ import annotations

import enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from rental_intake.core.errors import ValidationFailed
from rental_intake.core.logging import get_logger, log_event, log_exception
from rental_intake.modules.consolidation.schemas import ConsolidatedReservation
from rental_intake.modules.intake.schemas import BatchResult, ReservationReport
from rental_intake.modules.validation.schemas import (
    Severity,
    ValidationResult,
    ValidationStatus,
)

logger = get_logger(__name__)


class ReservationWriter(Protocol):
    """Creates the reservation downstream and returns its id, if it has one."""

    def write(
        self, reservation: ConsolidatedReservation, validation: ValidationResult
    ) -> str | None: ...


class WriteStatus(str, enum.Enum):
    WRITTEN = "written"
    HELD = "held"
    FAILED = "failed"


class WriteOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate_id: str
    status: WriteStatus
    reservation_id: str | None = None
    error: str | None = None


def ensure_forwardable(report: ReservationReport, *, accept_incomplete: bool = False) -> None:
    status = report.validation.status
    if status == ValidationStatus.VALID:
        return
    if status == ValidationStatus.INCOMPLETE and accept_incomplete:
        return
    fields = report.validation.missing_fields or [
        e.field for e in report.validation.errors if e.severity == Severity.ERROR
    ]
    raise ValidationFailed(status.value, fields)


def forward_to_writer(
    result: BatchResult, writer: ReservationWriter, *, accept_incomplete: bool = False
) -> list[WriteOutcome]:
    """
    Hand validated candidates to the reservation writer.

    Invalid records (and incomplete ones unless `accept_incomplete`) are held back.
    A writer error is recorded against its record and the remaining records are
    still forwarded.
    """
    outcomes: list[WriteOutcome] = []
    for report in result.consolidated:
        candidate_id = report.reservation.candidate_id
        try:
            ensure_forwardable(report, accept_incomplete=accept_incomplete)
        except ValidationFailed as e:
            outcomes.append(
                WriteOutcome(candidate_id=candidate_id, status=WriteStatus.HELD, error=str(e))
            )
            continue

        try:
            reservation_id = writer.write(report.reservation, report.validation)
        except Exception as e:
            log_exception(logger, "intake.writer.failure", candidate_id=candidate_id)
            outcomes.append(
                WriteOutcome(
                    candidate_id=candidate_id,
                    status=WriteStatus.FAILED,
                    error=f"{type(e).__name__}: {e}",
                )
            )
            continue

        outcomes.append(
            WriteOutcome(
                candidate_id=candidate_id,
                status=WriteStatus.WRITTEN,
                reservation_id=reservation_id,
            )
        )

    log_event(
        logger,
        "intake.writer.finish",
        batch_id=result.batch_id,
        written_count=sum(1 for o in outcomes if o.status == WriteStatus.WRITTEN),
        held_count=sum(1 for o in outcomes if o.status == WriteStatus.HELD),
        failed_count=sum(1 for o in outcomes if o.status == WriteStatus.FAILED),
    )
    return outcomes
