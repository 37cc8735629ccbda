from __future__ import annotations

import logging
from typing import Any, Dict, cast

from fastapi import Request
from fastapi import HTTPException as FastAPIHTTPException
from fastapi.responses import JSONResponse
from starlette import status
from fastapi.exceptions import RequestValidationError

from ...engine.errors import (
    CezError,
    GameOverError,
    IllegalMoveRequested,
    InvalidPositionEncoding,
    RemoteServiceFailure,
)


logger = logging.getLogger(__name__)

# Engine error -> (HTTP status, envelope code)
ENGINE_ERROR_STATUS = {
    IllegalMoveRequested: (status.HTTP_400_BAD_REQUEST, "illegal_move"),
    InvalidPositionEncoding: (status.HTTP_400_BAD_REQUEST, "invalid_position"),
    GameOverError: (status.HTTP_409_CONFLICT, "game_over"),
    RemoteServiceFailure: (status.HTTP_502_BAD_GATEWAY, "remote_service_failure"),
}


def error_envelope(
    *,
    code: str,
    message: str,
    err_type: str,
    request_id: str,
    field_errors: list[dict[str, str]] | None = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "type": err_type,
            "request_id": request_id,
        }
    }
    if field_errors:
        payload["error"]["field_errors"] = field_errors
    return payload


def _render(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    payload = error_envelope(
        code=code,
        message=message,
        err_type="client_error" if 400 <= status_code < 500 else "server_error",
        request_id=getattr(request.state, "request_id", ""),
    )
    return JSONResponse(status_code=status_code, content=payload)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, FastAPIHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _render(request, exc.status_code, _status_to_code(exc.status_code), detail)
    # Fallback (shouldn't happen with registration), treat as 500
    return _render(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal Server Error"
    )


async def engine_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    for err_cls, (status_code, code) in ENGINE_ERROR_STATUS.items():
        if isinstance(exc, err_cls):
            if status_code >= 500:
                logger.warning(
                    "engine error: %s", exc,
                    extra={"request_id": getattr(request.state, "request_id", "")},
                )
            return _render(request, status_code, code, str(exc))
    return _render(request, status.HTTP_400_BAD_REQUEST, "bad_request", str(exc))


async def exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, FastAPIHTTPException):
        return await http_exception_handler(request, exc)
    if isinstance(exc, CezError):
        return await engine_exception_handler(request, exc)
    # Otherwise, treat as internal error and log it
    request_id = getattr(request.state, "request_id", "")
    logger.exception("Unhandled exception", extra={"request_id": request_id})
    return _render(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal Server Error"
    )


async def request_validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "")
    # Map Pydantic/FastAPI validation errors to our structured envelope with 422
    errors = []
    rve = cast(RequestValidationError, exc)
    for e in rve.errors():
        loc = ".".join(str(p) for p in e.get("loc", []) if p is not None)
        msg = e.get("msg", "invalid value")
        typ = e.get("type", "value_error")
        errors.append({"field": loc, "code": typ, "message": msg})
    payload = error_envelope(
        code="unprocessable_entity",
        message="Validation error",
        err_type="client_error",
        request_id=request_id,
        field_errors=errors or None,
    )
    return JSONResponse(status_code=422, content=payload)


def _status_to_code(status_code: int) -> str:
    if status_code == status.HTTP_404_NOT_FOUND:
        return "not_found"
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "bad_request"
    if status_code == status.HTTP_409_CONFLICT:
        return "conflict"
    if status_code == 422:
        return "unprocessable_entity"
    if status_code == status.HTTP_502_BAD_GATEWAY:
        return "bad_gateway"
    if 500 <= status_code < 600:
        return "internal_error"
    return "error"
