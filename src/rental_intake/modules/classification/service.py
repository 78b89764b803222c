from __future__ import annotations

import re
from collections.abc import Sequence

from rental_intake.core.errors import ClassificationAmbiguous
from rental_intake.core.logging import get_logger, log_event
from rental_intake.modules.classification.schemas import Classification, DocumentType
from rental_intake.modules.extraction.schemas import ExtractedReservation
from rental_intake.modules.matching.normalize import normalize

logger = get_logger(__name__)

_CONTROL_KEYWORDS = ("controlo", "mapa de reservas")
_CHECK_IN_RE = re.compile(r"\b(entradas|check ?in|arrivals?|chegadas?)\b")
_CHECK_OUT_RE = re.compile(r"\b(saidas|check ?out|departures?|partidas?)\b")


def _type_from_records(records: Sequence[ExtractedReservation]) -> DocumentType | None:
    if not records:
        return None
    keys = {
        (normalize(r.guest_name), r.check_in_date, r.check_out_date)
        for r in records
    }
    has_in = [r.check_in_date is not None for r in records]
    has_out = [r.check_out_date is not None for r in records]

    # A day sheet lists several arrivals (or departures) without the counterpart date.
    if any(has_in) and not any(has_out):
        return DocumentType.CHECK_IN
    if any(has_out) and not any(has_in):
        return DocumentType.CHECK_OUT
    if len(keys) >= 2:
        return DocumentType.CONTROL_FILE
    return None


def _type_from_text(text: str | None) -> DocumentType | None:
    t = normalize(text)
    if not t:
        return None
    if any(kw in t for kw in _CONTROL_KEYWORDS):
        return DocumentType.CONTROL_FILE
    check_ins = len(_CHECK_IN_RE.findall(t))
    check_outs = len(_CHECK_OUT_RE.findall(t))
    if check_ins > check_outs:
        return DocumentType.CHECK_IN
    if check_outs > check_ins:
        return DocumentType.CHECK_OUT
    return None


def _resolve(
    from_records: DocumentType | None,
    from_text: DocumentType | None,
    from_hint: DocumentType | None,
) -> DocumentType:
    primary = [t for t in (from_records, from_text) if t is not None]
    if len(set(primary)) > 1:
        raise ClassificationAmbiguous(
            [f"records:{from_records.value}", f"text:{from_text.value}"]  # type: ignore[union-attr]
        )
    if primary:
        return primary[0]
    return from_hint or DocumentType.UNKNOWN


def classify(
    text: str | None = None,
    records: Sequence[ExtractedReservation] = (),
    *,
    hint: str | None = None,
) -> Classification:
    """
    Advisory document type from the extracted rows and/or the document text.

    Several distinct guest/date rows mean a control file; a lone fragment (or a
    sheet of fragments) missing the counterpart date means a check-in or check-out
    sheet. Conflicting evidence yields ``unknown`` with ``ambiguous=True``.
    """
    from_records = _type_from_records(records)
    from_text = _type_from_text(text)
    try:
        from_hint = DocumentType(hint) if hint else None
    except ValueError:
        from_hint = None

    signals = tuple(
        f"{source}:{value.value}"
        for source, value in (("records", from_records), ("text", from_text), ("hint", from_hint))
        if value is not None
    )

    try:
        document_type = _resolve(from_records, from_text, from_hint)
    except ClassificationAmbiguous as e:
        log_event(logger, "classification.ambiguous", signals=e.signals)
        return Classification(document_type=DocumentType.UNKNOWN, ambiguous=True, signals=signals)

    return Classification(document_type=document_type, signals=signals)
