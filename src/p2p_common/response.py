"""Unified API envelope.

    {"code": 0, "message": "success", "data": {...}, "timestamp": "...", "request_id": "req_..."}

code is 0 on success, otherwise the AppError code; on error, data carries the
error details (current and requested state, amounts). request_id is the one
RequestLogMiddleware issued for the current request, so the body and the
X-Request-ID header always agree.
"""

import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def _request_id() -> str:
    # Outside a request (tests, background jobs) each envelope gets its own id
    return current_request_id.get() or new_request_id()


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    request_id: str = Field(default_factory=_request_id)


def success_response(data: Any = None) -> ApiResponse:
    return ApiResponse(data=data)


def error_response(code: int, message: str, details: dict[str, Any] | None = None) -> ApiResponse:
    return ApiResponse(code=code, message=message, data=details or None)
