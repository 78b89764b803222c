from __future__ import annotations

import base64
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any

from pypdf import PdfReader

from rental_intake.core.config import settings
from rental_intake.core.errors import ExtractionFailed
from rental_intake.core.logging import get_logger, log_event, log_exception, monotonic_ms
from rental_intake.modules.extraction.ai import (
    SCHEMA_VERSION,
    ExtractionProvider,
    ExtractionRequest,
    ProviderError,
)
from rental_intake.modules.extraction.cache import ExtractionCache, cache_key
from rental_intake.modules.extraction.schemas import Document, ExtractedReservation
from rental_intake.modules.extraction.values import (
    clean_text,
    normalize_platform,
    parse_amount,
    parse_date,
    parse_int,
)

logger = get_logger(__name__)

_IMAGE_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
    "image/tiff",
}


@dataclass(frozen=True)
class PreparedDocument:
    kind: str
    pages: list[str] = field(default_factory=list)
    mime_type: str | None = None

    @property
    def text(self) -> str:
        return "\n".join(p for p in self.pages if p)

    @property
    def has_text(self) -> bool:
        return bool(self.text.strip())


@dataclass(frozen=True)
class ExtractionOutcome:
    records: list[ExtractedReservation]
    document_kind_hint: str | None
    attempts: int
    cached: bool


def detect_file_kind(*, filename: str, content_type: str | None, body: bytes) -> str:
    if _looks_like_pdf_bytes(body):
        return "pdf"
    image_type = _sniff_image_type(body)
    if image_type:
        return "image"

    ctype = (content_type or "").lower().split(";", 1)[0].strip()
    if ctype in _IMAGE_CONTENT_TYPES:
        return "image"
    if ctype.startswith("text/") or filename.lower().endswith((".txt", ".csv")):
        return "text"

    # Never hand PdfReader bytes that are not a PDF.
    if filename.lower().endswith(".pdf") or ctype.endswith("/pdf"):
        return "bad_pdf_upload"
    return "unknown"


def _looks_like_pdf_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    if b.startswith(b"\xef\xbb\xbf"):
        b = b[3:].lstrip()
    return b.startswith(b"%PDF")


def _sniff_image_type(body: bytes) -> str | None:
    if not body:
        return None
    b = body.lstrip()
    if b.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if b.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if b.startswith(b"II*\x00") or b.startswith(b"MM\x00*"):
        return "image/tiff"
    if b.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(b) >= 12 and b.startswith(b"RIFF") and b[8:12] == b"WEBP":
        return "image/webp"
    return None


def extract_pdf_pages(body: bytes) -> list[str]:
    reader = PdfReader(BytesIO(body))
    pages: list[str] = []
    for page in reader.pages:
        text = (page.extract_text() or "").replace("\u202f", " ").replace("\xa0", " ")
        pages.append(text)
    return pages


def prepare_document(document: Document) -> PreparedDocument:
    kind = detect_file_kind(
        filename=document.filename, content_type=document.content_type, body=document.body
    )
    if kind == "pdf":
        try:
            pages = extract_pdf_pages(document.body)
        except Exception as e:
            raise ExtractionFailed("unreadable_pdf", document_id=document.id) from e
        return PreparedDocument(kind="pdf", pages=pages, mime_type="application/pdf")
    if kind == "image":
        mime = _sniff_image_type(document.body) or (document.content_type or "image/png")
        return PreparedDocument(kind="image", mime_type=mime)
    if kind == "text":
        try:
            text = document.body.decode("utf-8")
        except UnicodeDecodeError:
            text = document.body.decode("latin-1", errors="replace")
        return PreparedDocument(kind="text", pages=[text], mime_type="text/plain")
    if kind == "bad_pdf_upload":
        raise ExtractionFailed("bad_pdf_upload", document_id=document.id)
    raise ExtractionFailed("unsupported_file", document_id=document.id)


def _number_pages(pages: list[str], *, max_chars: int) -> str:
    parts: list[str] = []
    for idx, page in enumerate(pages):
        body = page.strip()
        if not body:
            continue
        parts.append(f"--- page {idx + 1} ---\n{body}")
    text = "\n\n".join(parts)
    if max_chars > 0 and len(text) > max_chars:
        return text[: max_chars - 20].rstrip() + "\n\n[TRUNCATED]"
    return text


def _data_url(mime_type: str, body: bytes) -> str:
    return f"data:{mime_type};base64," + base64.b64encode(body).decode("ascii")


def build_request(
    document: Document, prepared: PreparedDocument, *, max_chars: int
) -> ExtractionRequest:
    if prepared.kind in {"pdf", "text"} and prepared.has_text:
        return ExtractionRequest(text=_number_pages(prepared.pages, max_chars=max_chars))
    # Scanned PDFs and photos go to the model as files.
    return ExtractionRequest(
        file_data_url=_data_url(prepared.mime_type or "application/octet-stream", document.body),
        filename=document.filename,
        is_image=prepared.kind == "image",
    )


def sanitize_reservations(obj: dict[str, Any], *, document_id: str) -> list[ExtractedReservation]:
    rows = obj.get("reservations")
    if not isinstance(rows, list):
        raise ExtractionFailed("malformed_response", document_id=document_id)

    out: list[ExtractedReservation] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        record = _sanitize_row(row, document_id=document_id)
        if record is not None:
            out.append(record)
    return out


def _confidence(raw: object) -> float:
    try:
        conf = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if conf != conf:  # NaN
        return 0.0
    return max(0.0, min(1.0, conf))


def _sanitize_row(row: dict[str, Any], *, document_id: str) -> ExtractedReservation | None:
    fields = {
        "guest_name": clean_text(row.get("guest_name"), max_len=120),
        "property_name_raw": clean_text(row.get("property_name"), max_len=200),
        "check_in_date": parse_date(row.get("check_in_date")),
        "check_out_date": parse_date(row.get("check_out_date")),
        "num_guests": parse_int(row.get("num_guests"), minimum=0, maximum=100),
        "total_amount": parse_amount(row.get("total_amount")),
        "platform": normalize_platform(row.get("platform")),
        "guest_email": clean_text(row.get("guest_email"), max_len=200),
        "guest_phone": clean_text(row.get("guest_phone"), max_len=40),
        "reference": clean_text(row.get("reference"), max_len=80),
    }
    if all(v is None for v in fields.values()):
        return None
    return ExtractedReservation(
        **fields,
        confidence=_confidence(row.get("confidence")),
        source_document_id=document_id,
        source_page=parse_int(row.get("page"), minimum=1, maximum=10000),
    )


def _document_kind_hint(obj: dict[str, Any]) -> str | None:
    kind = obj.get("document_kind")
    if isinstance(kind, str) and kind in {"check-in", "check-out", "control-file"}:
        return kind
    return None


class ExtractionAdapter:
    """
    Fixed-schema front for the AI extraction provider.

    Retries transient provider failures (network errors, timeouts, 429, 5xx) with
    bounded exponential backoff and turns every failure into `ExtractionFailed`.
    """

    def __init__(
        self,
        provider: ExtractionProvider,
        *,
        cache: ExtractionCache | None = None,
        max_attempts: int | None = None,
        backoff_base_seconds: float | None = None,
        backoff_max_seconds: float | None = None,
        max_chars: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.max_attempts = max(1, int(max_attempts or settings.provider_max_attempts))
        self.backoff_base_seconds = float(
            settings.provider_backoff_base_seconds
            if backoff_base_seconds is None
            else backoff_base_seconds
        )
        self.backoff_max_seconds = float(
            settings.provider_backoff_max_seconds
            if backoff_max_seconds is None
            else backoff_max_seconds
        )
        self.max_chars = int(settings.extraction_max_chars if max_chars is None else max_chars)
        self._sleep = sleep

    def extract(
        self, document: Document, *, prepared: PreparedDocument | None = None
    ) -> list[ExtractedReservation]:
        return self.extract_document(document, prepared=prepared).records

    def extract_document(
        self, document: Document, *, prepared: PreparedDocument | None = None
    ) -> ExtractionOutcome:
        start = time.monotonic()
        if prepared is None:
            prepared = prepare_document(document)

        key = cache_key(
            document_sha256=document.sha256,
            provider=self.provider.name,
            model=self.provider.model,
            schema_version=SCHEMA_VERSION,
        )
        response = self.cache.get(key, schema_version=SCHEMA_VERSION) if self.cache else None
        cached = response is not None
        attempts = 0
        if response is None:
            request = build_request(document, prepared, max_chars=self.max_chars)
            response, attempts = self._call_with_retry(request, document_id=document.id)

        records = sanitize_reservations(response, document_id=document.id)
        if self.cache and not cached:
            self.cache.put(
                key,
                document_sha256=document.sha256,
                provider=self.provider.name,
                model=self.provider.model,
                schema_version=SCHEMA_VERSION,
                response_json=response,
            )

        log_event(
            logger,
            "extraction.finish",
            filename=document.filename,
            file_kind=prepared.kind,
            records_count=len(records),
            attempts=attempts,
            cached=cached,
            duration_ms=monotonic_ms(start),
        )
        return ExtractionOutcome(
            records=records,
            document_kind_hint=_document_kind_hint(response),
            attempts=attempts,
            cached=cached,
        )

    def backoff_seconds(self, attempt: int, retry_after: float | None = None) -> float:
        delay = self.backoff_base_seconds * (2 ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(self.backoff_max_seconds, delay)

    def _call_with_retry(
        self, request: ExtractionRequest, *, document_id: str
    ) -> tuple[dict[str, Any], int]:
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.provider.extract_reservations(request), attempt
            except ProviderError as e:
                if not e.transient or attempt >= self.max_attempts:
                    log_event(
                        logger,
                        "extraction.provider.failure",
                        reason=e.reason,
                        attempts=attempt,
                        transient=e.transient,
                    )
                    raise ExtractionFailed(
                        e.reason,
                        document_id=document_id,
                        attempts=attempt,
                        transient=e.transient,
                    ) from e
                delay = self.backoff_seconds(attempt, e.retry_after)
                log_event(
                    logger,
                    "extraction.provider.retry",
                    reason=e.reason,
                    attempt=attempt,
                    delay_seconds=delay,
                )
                self._sleep(delay)
            except Exception as e:
                log_exception(logger, "extraction.provider.error", attempts=attempt)
                raise ExtractionFailed(
                    "provider_error", document_id=document_id, attempts=attempt
                ) from e
