"""Error types and FastAPI handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from stylepath.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        user_id: Optional[str] = None,
        operation: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.user_id = user_id
        self.operation = operation
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    """Missing or malformed input. Raised before any store access."""
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class StoreError(AppError):
    """Persistence read or write failed."""
    code = "store_error"
    status_code = 503


class UpstreamDependencyError(AppError):
    """A downstream call triggered by the engine failed."""
    code = "upstream_error"
    status_code = 502


def require_user_id(user_id: Optional[str], operation: str) -> str:
    if user_id is None or not str(user_id).strip():
        raise ValidationError("Missing user_id", operation=operation)
    return str(user_id).strip()


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "success": False,
        "error": message,
        "code": code,
        "request_id": request_id,
    }


def _respond(status_code: int, payload: dict, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("stylepath")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={
            "request_id": rid,
            "error_code": exc.code,
            "error_message": exc.message,
            "status": exc.status_code,
            "user_id": exc.user_id,
            "operation": exc.operation,
        },
    )
    return _respond(exc.status_code, _error_payload(exc.code, exc.message, rid), rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid input')}" if location else first.get("msg", "invalid input")
    logging.getLogger("stylepath").warning(
        "request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 422}
    )
    return _respond(422, _error_payload("validation_error", message, rid), rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    logging.getLogger("stylepath").warning(
        "http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code}
    )
    return _respond(exc.status_code, _error_payload(code, message, rid), rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logging.getLogger("stylepath").error(
        "unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"}
    )
    return _respond(500, _error_payload("internal_error", "Unexpected error", rid), rid)
