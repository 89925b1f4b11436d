from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from arroz_trace.runtime.errors import RecordError

# RecordError.code -> HTTP status
RECORD_ERROR_STATUS: Dict[str, int] = {
    "invalid_payload": 400,
    "validation_error": 422,
    "already_exists": 409,
    "not_found": 404,
    "unknown_function": 404,
    "corrupt_record": 500,
    "notify_error": 500,
    "query_error": 502,
    "selector_query_unsupported": 502,
    "store_error": 503,
}


@dataclass(eq=False)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


def _error_response(status: int, code: str, message: str, details: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"ok": False, "error": {"code": code, "message": message, "details": details}},
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def record_error_handler(request: Request, exc: RecordError) -> JSONResponse:
    status = RECORD_ERROR_STATUS.get(exc.code, 500)
    return _error_response(status, exc.code, exc.reason, exc.details)
