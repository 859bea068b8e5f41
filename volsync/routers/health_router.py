import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from volsync.database.session import get_db
from volsync.schemas.health import HealthCheckResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint."""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database query failed: {str(e)}")
        return JSONResponse(
            status_code=503,
            content=HealthCheckResponse(
                status="unhealthy", database="unavailable", error=str(e)
            ).model_dump(),
        )
    return HealthCheckResponse()
