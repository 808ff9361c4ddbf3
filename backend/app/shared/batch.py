from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum

from app.shared.exceptions import (
    AppError,
    ConflictError,
    InvariantViolation,
    NotFound,
    PreconditionFailed,
    ValidationError,
)


class CloseStage(str, Enum):
    FEES = "fees"
    CARRY = "carry"
    STATEMENTS = "statements"
    TAX_DOCUMENTS = "tax_documents"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INVARIANT = "invariant"
    PRECONDITION = "precondition"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"


_KIND_BY_ERROR: list[tuple[type[Exception], ErrorKind]] = [
    (ValidationError, ErrorKind.VALIDATION),
    (InvariantViolation, ErrorKind.INVARIANT),
    (PreconditionFailed, ErrorKind.PRECONDITION),
    (ConflictError, ErrorKind.CONFLICT),
    (NotFound, ErrorKind.NOT_FOUND),
]


def error_kind(exc: Exception) -> ErrorKind:
    for cls, kind in _KIND_BY_ERROR:
        if isinstance(exc, cls):
            return kind
    return ErrorKind.UNEXPECTED


@dataclass(frozen=True)
class AccountError:
    entity_id: uuid.UUID
    kind: ErrorKind
    message: str
    context: str | None = None

    def to_dict(self) -> dict:
        return {
            "entity_id": str(self.entity_id),
            "kind": self.kind.value,
            "message": self.message,
            "context": self.context,
        }


@dataclass
class StageResult:
    """Per-stage outcome of a batch run; accounts never abort their siblings."""

    stage: CloseStage
    processed: int = 0
    skipped: int = 0
    created_ids: list[uuid.UUID] = field(default_factory=list)
    errors: list[AccountError] = field(default_factory=list)

    def record_created(self, row_id: uuid.UUID) -> None:
        self.processed += 1
        self.created_ids.append(row_id)

    def record_skipped(self) -> None:
        self.skipped += 1

    def record_error(self, entity_id: uuid.UUID, exc: Exception, *, context: str | None = None) -> None:
        message = str(exc) if isinstance(exc, AppError) else f"{type(exc).__name__}: {exc}"
        self.errors.append(AccountError(entity_id=entity_id, kind=error_kind(exc), message=message, context=context))

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "created_ids": [str(i) for i in self.created_ids],
            "errors": [e.to_dict() for e in self.errors],
        }
