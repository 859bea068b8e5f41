import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger("volsync")

CORRELATION_HEADER = "x-correlation-id"
QUIET_PATHS = ("/health",)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response log lines tagged with the caller's correlation id.

    The id is taken from ``x-correlation-id`` (or minted when absent), kept on
    ``request.state`` and echoed back on the response. Only the path is
    logged; query strings can carry credentials.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        client = request.client.host if request.client else "-"
        line = f"{request.method} {request.url.path} from {client} cid={correlation_id}"
        quiet = request.url.path in QUIET_PATHS

        if not quiet:
            logger.info(
                f"[Request] {line} bytes={request.headers.get('content-length', '-')}"
            )
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[Unhandled Error] {line}")
            raise

        response.headers[CORRELATION_HEADER] = correlation_id
        duration_ms = (time.time() - start) * 1000
        summary = f"[Response] {line} -> {response.status_code} in {duration_ms:.1f}ms"
        if response.status_code >= 500:
            logger.error(summary)
        elif response.status_code >= 400:
            logger.warning(summary)
        elif not quiet:
            logger.info(summary)
        return response
