import logging
from typing import Callable

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from volsync.containers import Container
from volsync.database.session import get_db
from volsync.services.webhook_service import WebhookService

router = APIRouter(prefix="/api/volumetrica", tags=["volumetrica"])
logger = logging.getLogger(__name__)


async def read_body_capped(request: Request, limit: int) -> bytes:
    """Raw request bytes, reading at most one chunk past ``limit``."""
    chunks = []
    size = 0
    async for chunk in request.stream():
        chunks.append(chunk)
        size += len(chunk)
        if size > limit:
            logger.warning(f"Webhook body exceeded {limit} bytes; stopped reading")
            break
    return b"".join(chunks)


@router.post("/webhook")
@inject
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    webhook_service_factory: Callable[..., WebhookService] = Depends(
        Provide[Container.services.webhook_service.provider]
    ),
) -> JSONResponse:
    """Ingest one platform webhook delivery."""
    service = webhook_service_factory(db=db)
    # signature verification needs the exact bytes received
    raw_body = await read_body_capped(request, service.auth_config.max_body_bytes)
    outcome = await run_in_threadpool(
        service.ingest,
        raw_body,
        request.headers,
        request.client.host if request.client else None,
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.response.to_body())
