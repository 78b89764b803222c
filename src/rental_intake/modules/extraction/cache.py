from __future__ import annotations

import hashlib

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rental_intake.core.db import make_engine, make_session_factory
from rental_intake.core.logging import get_logger, log_exception
from rental_intake.core.models import Base
from rental_intake.modules.extraction.models import ExtractionCacheEntry

logger = get_logger(__name__)


def cache_key(*, document_sha256: str, provider: str, model: str, schema_version: int) -> str:
    raw = f"{document_sha256}:{provider}:{model}:{schema_version}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ExtractionCache:
    """Provider responses keyed by document content, so re-uploads skip the AI call."""

    def __init__(self, engine: Engine, *, create_schema: bool = True) -> None:
        self._engine = engine
        self._sessions = make_session_factory(engine)
        if create_schema:
            Base.metadata.create_all(engine, tables=[ExtractionCacheEntry.__table__])

    @classmethod
    def from_url(cls, database_url: str | None = None) -> ExtractionCache:
        return cls(make_engine(database_url))

    def get(self, key: str, *, schema_version: int) -> dict | None:
        try:
            with self._sessions() as session:
                entry = session.scalar(
                    select(ExtractionCacheEntry).where(ExtractionCacheEntry.cache_key == key)
                )
                if not entry or entry.schema_version != schema_version:
                    return None
                if not isinstance(entry.response_json, dict):
                    return None
                return dict(entry.response_json)
        except SQLAlchemyError:
            log_exception(logger, "extraction.cache.get.failure", cache_key=key)
            return None

    def put(
        self,
        key: str,
        *,
        document_sha256: str,
        provider: str,
        model: str,
        schema_version: int,
        response_json: dict,
    ) -> None:
        try:
            with self._sessions() as session:
                entry = session.get(ExtractionCacheEntry, key)
                if entry is None:
                    entry = ExtractionCacheEntry(cache_key=key)
                entry.document_sha256 = document_sha256
                entry.provider = provider
                entry.model = model
                entry.schema_version = schema_version
                entry.response_json = response_json
                session.add(entry)
                try:
                    session.commit()
                except IntegrityError:
                    # Another worker stored the same document first.
                    session.rollback()
        except SQLAlchemyError:
            log_exception(logger, "extraction.cache.put.failure", cache_key=key)

    def dispose(self) -> None:
        self._engine.dispose()
