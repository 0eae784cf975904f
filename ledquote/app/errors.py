from __future__ import annotations


class QuoteEngineError(Exception):
    """Base class for every error raised by the quotation engine."""

    retryable = False


class ValidationError(QuoteEngineError, ValueError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(QuoteEngineError, LookupError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConflictError(QuoteEngineError):
    """A quotation identifier collided with one inserted concurrently."""

    retryable = True

    def __init__(self, message: str, quotation_id: str | None = None):
        super().__init__(message)
        self.quotation_id = quotation_id


class GenerationError(QuoteEngineError):
    """Identifier generation aborted; no identifier was handed out."""
