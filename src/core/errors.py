"""
Error types shared by the query pipeline and its front-ends.
"""
from __future__ import annotations


class QueryValidationError(ValueError):
    """Raised when a request cannot be turned into a query descriptor.

    Carries every problem found, not just the first one, so callers can
    report all deficiencies at once.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Query validation failed: {'; '.join(self.errors)}")


class ProviderError(RuntimeError):
    """A failure reported by the data provider (access denied, not found, ...)."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)
