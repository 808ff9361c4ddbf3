from __future__ import annotations


class AppError(Exception):
    """Base error for domain/application exceptions."""


class NotAuthorized(AppError):
    """Raised when actor lacks permissions or fund access."""


class NotFound(AppError):
    """Raised when entity is missing or not visible within fund scope."""


class ValidationError(AppError):
    """Raised for domain-level validation beyond schema validation."""


class InvariantViolation(AppError):
    """Raised when an operation would break share or balance conservation."""


class PreconditionFailed(AppError):
    """Raised when required upstream data (NAV mark, waterfall calculation, ...) is missing."""


class ConflictError(AppError):
    """Raised on duplicate processing of an already-completed key or a concurrent run."""
