from __future__ import annotations

import contextvars
import threading
import time
import uuid
from collections import Counter
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from rental_intake.core.config import settings
from rental_intake.core.errors import CatalogUnavailable, ExtractionFailed, ProviderUnavailable
from rental_intake.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_batch_context,
    reset_document_context,
    set_batch_context,
    set_document_context,
)
from rental_intake.modules.catalog.schemas import CatalogSnapshot
from rental_intake.modules.catalog.service import CatalogProvider, load_catalog
from rental_intake.modules.classification.service import classify
from rental_intake.modules.consolidation.service import consolidate
from rental_intake.modules.extraction.ai import OpenAIExtractionProvider
from rental_intake.modules.extraction.cache import ExtractionCache
from rental_intake.modules.extraction.schemas import Document
from rental_intake.modules.extraction.service import ExtractionAdapter, prepare_document
from rental_intake.modules.intake.schemas import (
    BatchFailure,
    BatchResult,
    BatchSummary,
    DocumentOutcome,
    DocumentStatus,
    ReservationReport,
    UnmatchedName,
)
from rental_intake.modules.matching.service import PropertyMatcher
from rental_intake.modules.validation.schemas import ValidationStatus
from rental_intake.modules.validation.service import ValidationLimits, validate

logger = get_logger(__name__)

MIN_WORKERS = 1
MAX_WORKERS = 5


def clamp_workers(value: int | None) -> int:
    if value is None:
        value = settings.intake_max_workers
    return max(MIN_WORKERS, min(MAX_WORKERS, int(value)))


class IntakePipeline:
    """
    Batch orchestrator: extract every document, then consolidate and validate.

    Documents are processed on a bounded thread pool. One document failing never
    aborts the batch; it is reported in `failures`. Consolidation runs only after
    every submitted document has finished or failed.
    """

    def __init__(
        self,
        adapter: ExtractionAdapter,
        *,
        max_workers: int | None = None,
        match_threshold: int | None = None,
        suggestion_threshold: int | None = None,
        limits: ValidationLimits | None = None,
    ) -> None:
        self.adapter = adapter
        self.max_workers = clamp_workers(max_workers)
        self.match_threshold = match_threshold
        self.suggestion_threshold = suggestion_threshold
        self.limits = limits

    @classmethod
    def from_settings(cls) -> IntakePipeline:
        cache = ExtractionCache.from_url() if settings.extraction_cache_enabled else None
        adapter = ExtractionAdapter(OpenAIExtractionProvider(), cache=cache)
        return cls(adapter)

    def process_batch(
        self,
        documents: Sequence[Document],
        catalog: CatalogSnapshot | CatalogProvider,
        cancel_event: threading.Event | None = None,
    ) -> BatchResult:
        if not isinstance(catalog, CatalogSnapshot):
            catalog = load_catalog(catalog)
        if not catalog.properties:
            raise CatalogUnavailable("Property catalog is empty")

        batch_id = str(uuid.uuid4())
        token = set_batch_context(batch_id)
        start = time.monotonic()
        try:
            log_event(
                logger,
                "intake.batch.start",
                documents_count=len(documents),
                max_workers=self.max_workers,
                properties_count=len(catalog.properties),
            )
            matcher = PropertyMatcher(
                catalog,
                threshold=self.match_threshold,
                suggestion_threshold=self.suggestion_threshold,
            )
            outcomes = self._run_documents(documents, matcher, cancel_event)
            result = self._assemble(
                batch_id,
                catalog,
                outcomes,
                matcher,
                cancelled=bool(cancel_event and cancel_event.is_set()),
            )
            log_event(
                logger,
                "intake.batch.finish",
                documents_processed=result.summary.documents_processed,
                documents_failed=result.summary.documents_failed,
                documents_skipped=result.summary.documents_skipped,
                reservations_total=result.summary.reservations_total,
                valid_count=result.summary.valid_count,
                match_rate=result.summary.match_rate,
                match_memo_hits=matcher.hits,
                duration_ms=monotonic_ms(start),
            )
        finally:
            reset_batch_context(token)

        failures = result.failures
        if (
            failures
            and result.summary.documents_processed == 0
            and all(f.transient for f in failures)
        ):
            raise ProviderUnavailable(
                f"Extraction provider unavailable for all {len(failures)} documents"
            )
        return result

    def _run_documents(
        self,
        documents: Sequence[Document],
        matcher: PropertyMatcher,
        cancel_event: threading.Event | None,
    ) -> list[DocumentOutcome]:
        if not documents:
            return []
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(documents)),
            thread_name_prefix="intake",
        ) as pool:
            # Each task runs in a copy of the caller's context so batch_id reaches its logs.
            futures = [
                pool.submit(
                    contextvars.copy_context().run,
                    self._process_document,
                    document,
                    matcher,
                    cancel_event,
                )
                for document in documents
            ]
            return [f.result() for f in futures]

    def _process_document(
        self,
        document: Document,
        matcher: PropertyMatcher,
        cancel_event: threading.Event | None,
    ) -> DocumentOutcome:
        if cancel_event is not None and cancel_event.is_set():
            log_event(logger, "intake.document.skipped", document_id=document.id)
            return DocumentOutcome(
                document_id=document.id,
                filename=document.filename,
                status=DocumentStatus.SKIPPED,
            )

        token = set_document_context(document.id)
        start = time.monotonic()
        try:
            prepared = prepare_document(document)
            extraction = self.adapter.extract_document(document, prepared=prepared)
            classification = classify(
                prepared.text, extraction.records, hint=extraction.document_kind_hint
            )
            for record in extraction.records:
                matcher.match(record.property_name_raw)
            return DocumentOutcome(
                document_id=document.id,
                filename=document.filename,
                status=DocumentStatus.PROCESSED,
                document_type=classification.document_type,
                ambiguous=classification.ambiguous,
                records=tuple(extraction.records),
                attempts=extraction.attempts,
                cached=extraction.cached,
                duration_ms=monotonic_ms(start),
            )
        except ExtractionFailed as e:
            log_event(
                logger,
                "intake.document.failed",
                reason=e.reason,
                attempts=e.attempts,
                transient=e.transient,
            )
            return _failed(
                document, e.reason, attempts=e.attempts, transient=e.transient, start=start
            )
        except Exception:
            log_exception(logger, "intake.document.error")
            return _failed(document, "internal_error", attempts=0, transient=False, start=start)
        finally:
            reset_document_context(token)

    def _assemble(
        self,
        batch_id: str,
        catalog: CatalogSnapshot,
        outcomes: list[DocumentOutcome],
        matcher: PropertyMatcher,
        *,
        cancelled: bool,
    ) -> BatchResult:
        records = [r for o in outcomes for r in o.records]
        candidates = consolidate(records, matcher)
        reports = [
            ReservationReport(reservation=c, validation=validate(c, limits=self.limits))
            for c in candidates
        ]
        failures = [
            BatchFailure(
                document_id=o.document_id,
                filename=o.filename,
                reason=o.error or "unknown",
                attempts=o.attempts,
                transient=o.error_transient,
            )
            for o in outcomes
            if o.status == DocumentStatus.FAILED
        ]
        summary = summarize(reports, outcomes, matcher, cancelled=cancelled)
        return BatchResult(
            batch_id=batch_id,
            catalog_loaded_at=catalog.loaded_at,
            per_document=outcomes,
            consolidated=reports,
            failures=failures,
            summary=summary,
        )


def _failed(
    document: Document, reason: str, *, attempts: int, transient: bool, start: float
) -> DocumentOutcome:
    return DocumentOutcome(
        document_id=document.id,
        filename=document.filename,
        status=DocumentStatus.FAILED,
        attempts=attempts,
        error=reason,
        error_transient=transient,
        duration_ms=monotonic_ms(start),
    )


def summarize(
    reports: Sequence[ReservationReport],
    outcomes: Sequence[DocumentOutcome],
    matcher: PropertyMatcher,
    *,
    cancelled: bool = False,
) -> BatchSummary:
    statuses = Counter(r.validation.status for r in reports)
    matched = sum(1 for r in reports if r.reservation.property_id is not None)
    total = len(reports)

    unmatched_raw: Counter[str] = Counter()
    for r in reports:
        raw = r.reservation.property_name_raw
        if r.reservation.property_id is None and raw:
            unmatched_raw[raw] += 1

    unmatched_names = [
        UnmatchedName(
            property_name_raw=raw,
            occurrences=count,
            suggestions=matcher.suggest(raw),
        )
        for raw, count in sorted(unmatched_raw.items())
    ]

    doc_statuses = Counter(o.status for o in outcomes)
    return BatchSummary(
        documents_total=len(outcomes),
        documents_processed=doc_statuses[DocumentStatus.PROCESSED],
        documents_failed=doc_statuses[DocumentStatus.FAILED],
        documents_skipped=doc_statuses[DocumentStatus.SKIPPED],
        reservations_total=total,
        valid_count=statuses[ValidationStatus.VALID],
        incomplete_count=statuses[ValidationStatus.INCOMPLETE],
        invalid_count=statuses[ValidationStatus.INVALID],
        matched_count=matched,
        unmatched_count=total - matched,
        match_rate=round(100.0 * matched / total, 1) if total else 0.0,
        unmatched_names=unmatched_names,
        cancelled=cancelled,
    )
