from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


class Severity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationStatus(str, enum.Enum):
    VALID = "valid"
    INCOMPLETE = "incomplete"
    INVALID = "invalid"


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str
    severity: Severity
    rule_id: str


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ValidationStatus
    missing_fields: list[str] = []
    errors: list[ValidationIssue] = []

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [e for e in self.errors if e.severity == Severity.WARNING]

    @property
    def forwardable(self) -> bool:
        return self.status in {ValidationStatus.VALID, ValidationStatus.INCOMPLETE}
