from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(eq=False)
class RecordError(Exception):
    """Canonical error type for record operations and store failures."""

    reason: str
    details: Any | None = None

    code: ClassVar[str] = "record_error"

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"

    def to_json(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.reason, "details": self.details}


class InvalidPayload(RecordError):
    code = "invalid_payload"


class ValidationError(RecordError):
    code = "validation_error"


class AlreadyExists(RecordError):
    code = "already_exists"


class NotFound(RecordError):
    code = "not_found"


class CorruptRecord(RecordError):
    code = "corrupt_record"


class QueryError(RecordError):
    code = "query_error"


class SelectorQueryUnsupported(QueryError):
    """Raised by backends that can only serve range scans."""

    code = "selector_query_unsupported"


class StoreError(RecordError):
    code = "store_error"


class NotifyError(RecordError):
    code = "notify_error"


class UnknownFunction(RecordError):
    code = "unknown_function"
