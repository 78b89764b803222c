from __future__ import annotations

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from rental_intake.core.models import Base, Timestamped


class ExtractionCacheEntry(Timestamped, Base):
    __tablename__ = "extraction_cache_entry"

    cache_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    document_sha256: Mapped[str] = mapped_column(String(64), index=True)
    provider: Mapped[str] = mapped_column(String(50), default="openai")
    model: Mapped[str] = mapped_column(String(100), default="")
    schema_version: Mapped[int] = mapped_column(Integer, default=1)
    response_json: Mapped[dict] = mapped_column(JSON, default=dict)
