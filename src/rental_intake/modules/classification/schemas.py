from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


class DocumentType(str, enum.Enum):
    CHECK_IN = "check-in"
    CHECK_OUT = "check-out"
    CONTROL_FILE = "control-file"
    UNKNOWN = "unknown"


class Classification(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_type: DocumentType = DocumentType.UNKNOWN
    ambiguous: bool = False
    # e.g. ["records:control-file", "text:check-in"]
    signals: tuple[str, ...] = ()
