from __future__ import annotations

import json
import logging


def test_log_event_carries_batch_and_document_context():
    from rental_intake.core import logging as intake_logging

    records: list[logging.LogRecord] = []

    class _Collect(logging.Handler):
        def emit(self, record):
            records.append(record)

    logger = intake_logging.get_logger("rental_intake.tests")
    handler = _Collect()
    logger.addHandler(handler)
    batch_token = intake_logging.set_batch_context("batch-1")
    doc_token = intake_logging.set_document_context("doc-9")
    try:
        intake_logging.log_event(logger, "intake.test", records_count=2, skipped=None)
    finally:
        intake_logging.reset_document_context(doc_token)
        intake_logging.reset_batch_context(batch_token)
        logger.removeHandler(handler)

    payload = json.loads(intake_logging.JsonFormatter().format(records[0]))
    assert payload["event"] == "intake.test"
    assert payload["batch_id"] == "batch-1"
    assert payload["document_id"] == "doc-9"
    assert payload["records_count"] == 2
    assert "skipped" not in payload
    assert payload["ts"].endswith("Z")
