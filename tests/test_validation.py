from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal


def _candidate(**overrides):
    from rental_intake.modules.consolidation.schemas import ConsolidatedReservation
    from rental_intake.modules.extraction.schemas import Platform

    fields = dict(
        guest_name="Pedro Oliveira",
        property_name_raw="Sete Rios",
        property_id=2,
        check_in_date=date(2025, 7, 7),
        check_out_date=date(2025, 7, 12),
        total_amount=Decimal("450.00"),
        num_guests=2,
        platform=Platform.AIRBNB,
        confidence=0.9,
    )
    fields.update(overrides)
    return ConsolidatedReservation(**fields)


def test_complete_reservation_is_valid():
    from rental_intake.modules.validation.service import validate

    result = validate(_candidate())
    assert result.status.value == "valid"
    assert result.missing_fields == []
    assert result.errors == []


def test_missing_total_amount_is_incomplete():
    from rental_intake.modules.validation.service import validate

    result = validate(_candidate(total_amount=None))
    assert result.status.value == "incomplete"
    assert result.missing_fields == ["total_amount"]
    assert [(e.field, e.severity.value) for e in result.errors] == [("total_amount", "error")]


def test_required_fields_only_is_valid_with_warnings():
    from rental_intake.modules.validation.service import validate

    result = validate(_candidate(num_guests=None, platform=None))
    assert result.status.value == "valid"
    assert {w.field for w in result.warnings} == {"num_guests", "platform"}


def test_unmatched_property_is_reported_as_missing():
    from rental_intake.modules.validation.service import validate

    result = validate(_candidate(property_id=None, property_name_raw="Almada Rei"))
    assert result.status.value == "incomplete"
    assert result.missing_fields == ["property_id"]
    assert "Almada Rei" in result.errors[0].message


def test_check_out_not_after_check_in_is_invalid():
    from rental_intake.modules.validation.service import validate

    same_day = validate(_candidate(check_out_date=date(2025, 7, 7)))
    assert same_day.status.value == "invalid"

    reversed_dates = validate(
        _candidate(check_out_date=date(2025, 7, 1), total_amount=None)
    )
    assert reversed_dates.status.value == "invalid"
    assert reversed_dates.missing_fields == ["total_amount"]


def test_negative_total_is_invalid():
    from rental_intake.modules.validation.service import validate

    result = validate(_candidate(total_amount=Decimal("-10.00")))
    assert result.status.value == "invalid"
    assert result.errors[0].field == "total_amount"


def test_sanity_warnings_do_not_block():
    from rental_intake.modules.validation.service import ValidationLimits, validate

    limits = ValidationLimits(max_stay_nights=30, max_guests=20, low_confidence_threshold=0.5)
    result = validate(
        _candidate(
            guest_name="Jo",
            check_out_date=date(2025, 9, 1),
            num_guests=25,
            guest_email="not-an-email",
            confidence=0.2,
        ),
        limits=limits,
    )
    assert result.status.value == "valid"
    assert [w.rule_id for w in result.warnings] == ["V011", "V021", "V023", "V024", "V030"]


def test_consolidation_conflicts_surface_as_warnings():
    from rental_intake.modules.consolidation.schemas import FieldConflict
    from rental_intake.modules.validation.service import validate

    conflict = FieldConflict(
        field="total_amount",
        kept="480.00",
        discarded="450.00",
        kept_source="pdf",
        discarded_source="scan",
    )
    result = validate(_candidate(conflicts=(conflict,)))
    assert result.status.value == "valid"
    assert result.warnings[0].field == "total_amount"
    assert "480.00" in result.warnings[0].message


def test_all_required_fields_present_is_always_valid():
    from rental_intake.modules.validation.service import validate

    for nights in (1, 3, 14, 29):
        for amount in ("0", "0.01", "99999.99"):
            for guests in (None, 1, 4, 50):
                result = validate(
                    _candidate(
                        check_out_date=date(2025, 7, 7) + timedelta(days=nights),
                        total_amount=Decimal(amount),
                        num_guests=guests,
                        confidence=0.0,
                    )
                )
                assert result.status.value == "valid"
