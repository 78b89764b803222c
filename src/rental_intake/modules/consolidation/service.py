from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any

from rental_intake.core.logging import get_logger, log_event
from rental_intake.modules.consolidation.schemas import ConsolidatedReservation, FieldConflict
from rental_intake.modules.extraction.schemas import ExtractedReservation
from rental_intake.modules.matching.normalize import normalize
from rental_intake.modules.matching.schemas import NO_MATCH
from rental_intake.modules.matching.service import PropertyMatcher

logger = get_logger(__name__)

_MERGED_FIELDS = (
    "guest_name",
    "property_name_raw",
    "check_in_date",
    "check_out_date",
    "num_guests",
    "total_amount",
    "platform",
    "guest_email",
    "guest_phone",
    "reference",
)


def _content_key(r: ExtractedReservation) -> tuple[str, ...]:
    return tuple(str(getattr(r, f) or "") for f in _MERGED_FIELDS) + (
        r.source_document_id,
        str(r.source_page or 0),
    )


def _earliest_date(r: ExtractedReservation) -> date:
    dates = [d for d in (r.check_in_date, r.check_out_date) if d is not None]
    return min(dates) if dates else date.max


def _comparable(field: str, value: Any) -> Any:
    if field in {"guest_name", "property_name_raw"}:
        return normalize(value)
    if field == "guest_email":
        return str(value).strip().lower()
    if field in {"guest_phone", "reference"}:
        return "".join(ch for ch in str(value) if ch.isalnum()).lower()
    return value


def _compatible(cluster: list[ExtractedReservation], record: ExtractedReservation) -> bool:
    check_in = next((r.check_in_date for r in cluster if r.check_in_date), None)
    check_out = next((r.check_out_date for r in cluster if r.check_out_date), None)
    if check_in and record.check_in_date and check_in != record.check_in_date:
        return False
    if check_out and record.check_out_date and check_out != record.check_out_date:
        return False
    merged_in = check_in or record.check_in_date
    merged_out = check_out or record.check_out_date
    if merged_in and merged_out and merged_out <= merged_in:
        return False
    return True


def _cluster(group: list[ExtractedReservation]) -> list[list[ExtractedReservation]]:
    ordered = sorted(
        group, key=lambda r: (_earliest_date(r), -r.confidence, _content_key(r))
    )
    clusters: list[list[ExtractedReservation]] = []
    for record in ordered:
        for cluster in clusters:
            if _compatible(cluster, record):
                cluster.append(record)
                break
        else:
            clusters.append([record])
    return clusters


def _merge(
    records: list[ExtractedReservation], matcher: PropertyMatcher | None
) -> ConsolidatedReservation:
    # Highest confidence first; ties resolved by content so input order never matters.
    ranked = sorted(records, key=lambda r: (-r.confidence, _content_key(r)))
    values: dict[str, Any] = {}
    conflicts: list[FieldConflict] = []
    for field in _MERGED_FIELDS:
        kept: ExtractedReservation | None = None
        for record in ranked:
            value = getattr(record, field)
            if value is None:
                continue
            if kept is None:
                kept = record
                values[field] = value
                continue
            if _comparable(field, value) != _comparable(field, values[field]):
                conflicts.append(
                    FieldConflict(
                        field=field,
                        kept=str(values[field]),
                        discarded=str(value),
                        kept_source=kept.source_document_id,
                        discarded_source=record.source_document_id,
                    )
                )

    # The match follows the kept name, so it never depends on which fragment came first.
    match = matcher.match(values.get("property_name_raw")) if matcher else NO_MATCH
    if match.property_id is not None:
        # Spellings that resolved to one catalog property are not a disagreement.
        conflicts = [c for c in conflicts if c.field != "property_name_raw"]

    return ConsolidatedReservation(
        **values,
        property_id=match.property_id,
        match=match,
        confidence=min(r.confidence for r in records),
        source_records=tuple(ranked),
        conflicts=tuple(conflicts),
    )


def _sort_key(c: ConsolidatedReservation) -> tuple[str, ...]:
    return (
        normalize(c.guest_name),
        str(c.property_id or ""),
        normalize(c.property_name_raw),
        c.check_in_date.isoformat() if c.check_in_date else "",
        c.check_out_date.isoformat() if c.check_out_date else "",
        c.candidate_id,
    )


def consolidate(
    records: Sequence[ExtractedReservation],
    matcher: PropertyMatcher | None = None,
) -> list[ConsolidatedReservation]:
    """
    Merge fragments that describe the same stay into reservation candidates.

    Records are grouped by (normalized guest name, matched property id or normalized
    raw property name). Within a group, fragments whose dates agree are merged: a
    check-in sheet row and a check-out sheet row become one candidate. On a field
    conflict the higher-confidence value is kept and the discrepancy is recorded.
    The result does not depend on the order of `records`.
    """
    groups: dict[tuple[str, str], list[ExtractedReservation]] = {}
    singles: list[ExtractedReservation] = []

    for record in records:
        match = matcher.match(record.property_name_raw) if matcher else NO_MATCH
        guest_key = normalize(record.guest_name)
        if not guest_key:
            singles.append(record)
            continue
        if match.property_id is not None:
            property_key = f"id:{match.property_id}"
        else:
            property_key = f"raw:{normalize(record.property_name_raw)}"
        key = (guest_key, property_key)
        groups.setdefault(key, []).append(record)

    out: list[ConsolidatedReservation] = []
    merged_count = 0
    for group in groups.values():
        for cluster in _cluster(group):
            candidate = _merge(cluster, matcher)
            if candidate.is_merged:
                merged_count += 1
            out.append(candidate)

    for record in singles:
        out.append(_merge([record], matcher))

    out.sort(key=_sort_key)
    log_event(
        logger,
        "consolidation.finish",
        records_count=len(records),
        candidates_count=len(out),
        merged_count=merged_count,
        conflicts_count=sum(len(c.conflicts) for c in out),
    )
    return out
