import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import BaseAPIException, InternalServerError

logger = logging.getLogger("volsync")

# Platform-facing routes answer with the flat {ok, error, details} envelope.
INTEGRATION_PREFIX = "/api/volumetrica"


def _describe(request: Request) -> str:
    client = request.client.host if request.client else "-"
    return f"{request.method} {request.url.path} from {client}"


def _is_integration_route(request: Request) -> bool:
    return request.url.path.startswith(INTEGRATION_PREFIX)


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Render an error in the envelope the route's callers expect."""
    if _is_integration_route(request):
        content: Dict[str, Any] = {"ok": False, "error": message}
        if details:
            content["details"] = details
    else:
        content = {
            "success": False,
            "error": {"code": code, "message": message, "details": details or {}},
        }
    return JSONResponse(
        status_code=status_code, content=jsonable_encoder(content), headers=headers
    )


def _log(request: Request, label: str, status_code: int, message: Any) -> None:
    line = f"[{label}] {_describe(request)} -> {status_code}: {message}"
    if status_code >= 500:
        logger.error(line)
    else:
        logger.warning(line)


async def handle_base_api_exception(request: Request, exc: BaseAPIException) -> JSONResponse:
    _log(request, exc.error_code, exc.status_code, exc.message)
    return error_response(
        request, exc.status_code, exc.error_code, exc.message, exc.details, exc.headers
    )


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    _log(request, "HTTPException", exc.status_code, exc.detail)
    return error_response(
        request, exc.status_code, "HTTP_ERROR", str(exc.detail), headers=exc.headers
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    _log(request, "ValidationError", 422, exc.errors())
    return error_response(request, 422, "VALIDATION_001", "Validation failed", exc.errors())


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"[Unhandled Error] {_describe(request)}\n"
        f"Exception Type: {type(exc).__name__}\n"
        f"Exception Message: {str(exc)}\n\n"
        f"Full Stack Trace:\n{tb_str}"
    )
    internal = InternalServerError()
    return error_response(request, internal.status_code, internal.error_code, internal.message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
