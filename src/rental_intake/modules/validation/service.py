from __future__ import annotations

from dataclasses import dataclass

from rental_intake.core.config import settings
from rental_intake.core.logging import get_logger, log_event
from rental_intake.modules.consolidation.schemas import ConsolidatedReservation
from rental_intake.modules.extraction.values import is_plausible_email
from rental_intake.modules.validation.schemas import (
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationStatus,
)

logger = get_logger(__name__)

REQUIRED_FIELDS = (
    "guest_name",
    "check_in_date",
    "check_out_date",
    "property_id",
    "total_amount",
)

# Errors other than a missing required field make the record invalid.
_MISSING_RULE_ID = "V001"


@dataclass(frozen=True)
class ValidationLimits:
    max_stay_nights: int
    max_guests: int
    low_confidence_threshold: float

    @classmethod
    def from_settings(cls) -> ValidationLimits:
        return cls(
            max_stay_nights=settings.max_stay_nights,
            max_guests=settings.max_guests,
            low_confidence_threshold=settings.low_confidence_threshold,
        )


def _missing_message(field: str, reservation: ConsolidatedReservation) -> str:
    if field == "property_id" and reservation.property_name_raw:
        return f"Property {reservation.property_name_raw!r} did not match the catalog."
    return f"{field} is required."


def validate(
    reservation: ConsolidatedReservation, *, limits: ValidationLimits | None = None
) -> ValidationResult:
    limits = limits or ValidationLimits.from_settings()
    issues: list[ValidationIssue] = []
    missing: list[str] = []

    def add(field: str, rule_id: str, severity: Severity, message: str) -> None:
        issues.append(
            ValidationIssue(field=field, rule_id=rule_id, severity=severity, message=message)
        )

    for field in REQUIRED_FIELDS:
        value = getattr(reservation, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
            add(field, _MISSING_RULE_ID, Severity.ERROR, _missing_message(field, reservation))

    check_in = reservation.check_in_date
    check_out = reservation.check_out_date
    if check_in and check_out:
        if check_out <= check_in:
            add(
                "check_out_date",
                "V010",
                Severity.ERROR,
                "Check-out date must be after the check-in date.",
            )
        elif (check_out - check_in).days > limits.max_stay_nights:
            add(
                "check_out_date",
                "V011",
                Severity.WARNING,
                f"Stay of {(check_out - check_in).days} nights exceeds "
                f"{limits.max_stay_nights} nights.",
            )

    if reservation.total_amount is not None and reservation.total_amount < 0:
        add("total_amount", "V012", Severity.ERROR, "Total amount cannot be negative.")

    if reservation.num_guests is None:
        add("num_guests", "V020", Severity.WARNING, "Number of guests is missing.")
    elif not 1 <= reservation.num_guests <= limits.max_guests:
        add(
            "num_guests",
            "V021",
            Severity.WARNING,
            f"Number of guests should be between 1 and {limits.max_guests}.",
        )

    if reservation.platform is None:
        add("platform", "V022", Severity.WARNING, "Booking platform is missing.")

    if reservation.guest_name and len(reservation.guest_name.strip()) < 3:
        add("guest_name", "V023", Severity.WARNING, "Guest name looks too short.")

    if reservation.guest_email and not is_plausible_email(reservation.guest_email):
        add("guest_email", "V024", Severity.WARNING, "Guest email looks malformed.")

    if reservation.confidence < limits.low_confidence_threshold:
        add(
            "confidence",
            "V030",
            Severity.WARNING,
            f"Extraction confidence {reservation.confidence:.2f} is low; review the source.",
        )

    for conflict in reservation.conflicts:
        add(
            conflict.field,
            "V031",
            Severity.WARNING,
            f"Documents disagree on {conflict.field}: kept {conflict.kept!r}, "
            f"discarded {conflict.discarded!r}.",
        )

    errors = [i for i in issues if i.severity == Severity.ERROR]
    if not errors:
        status = ValidationStatus.VALID
    elif any(i.rule_id != _MISSING_RULE_ID for i in errors):
        status = ValidationStatus.INVALID
    else:
        status = ValidationStatus.INCOMPLETE

    if status != ValidationStatus.VALID:
        log_event(
            logger,
            "validation.result",
            candidate_id=reservation.candidate_id,
            status=status.value,
            missing_fields=sorted(missing),
            errors_count=len(errors),
        )
    return ValidationResult(status=status, missing_fields=sorted(missing), errors=issues)
