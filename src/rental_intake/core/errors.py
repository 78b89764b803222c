from __future__ import annotations


class IntakeError(RuntimeError):
    pass


class CatalogUnavailable(IntakeError):
    pass


class ExtractionFailed(IntakeError):
    """Extraction of one document gave up.

    `transient` is True when the last failure was a network error, a timeout,
    a rate limit or a provider 5xx (the kind of failure that would have been
    retried had attempts remained).
    """

    def __init__(
        self,
        reason: str,
        *,
        document_id: str | None = None,
        attempts: int = 0,
        transient: bool = False,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.document_id = document_id
        self.attempts = attempts
        self.transient = transient


class ProviderUnavailable(IntakeError):
    pass


class ClassificationAmbiguous(IntakeError):
    def __init__(self, signals: list[str]) -> None:
        super().__init__("Conflicting document type signals: " + ", ".join(signals))
        self.signals = signals


class ValidationFailed(IntakeError):
    def __init__(self, status: str, fields: list[str]) -> None:
        super().__init__(f"Reservation is {status}: " + ", ".join(fields))
        self.status = status
        self.fields = fields
