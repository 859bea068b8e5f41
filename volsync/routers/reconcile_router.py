import logging
from typing import Callable, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from volsync.containers import Container
from volsync.core.exceptions import BadRequestError
from volsync.core.security import AdminPrincipal, require_admin
from volsync.database.session import get_db
from volsync.schemas.reconcile import ReconcileRequest, ReconcileResponse
from volsync.services.reconciliation_service import (
    ReconciliationError,
    ReconciliationService,
)

router = APIRouter(prefix="/api/volumetrica", tags=["reconcile"])
logger = logging.getLogger(__name__)


@router.post("/reconcile", response_model=ReconcileResponse)
@inject
def reconcile(
    body: Optional[ReconcileRequest] = Body(default=None),
    principal: AdminPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
    reconciliation_service_factory: Callable[..., ReconciliationService] = Depends(
        Provide[Container.services.reconciliation_service.provider]
    ),
):
    """Diff upstream state against local projections and backfill gaps."""
    body = body or ReconcileRequest()
    if not body.user_id and not body.account_id:
        raise BadRequestError("userId or accountId is required.")

    service = reconciliation_service_factory(db=db)
    try:
        result = service.reconcile(
            user_id=body.user_id,
            account_id=body.account_id,
            start_dt=body.start_dt,
            end_dt=body.end_dt,
            include_trades=body.include_trades,
            actor=principal,
        )
    except ReconciliationError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"ok": False, "error": "Reconciliation failed.", "details": e.details},
        )
    return ReconcileResponse(result=result.to_body())
