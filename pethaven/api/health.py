"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pethaven.api.models import HealthResponse
from pethaven.db.session import get_db

log = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/healthz", response_model=HealthResponse)
async def healthz(db: Session = Depends(get_db)) -> HealthResponse:
    """Health check endpoint.

    The service is up if it can answer; ``database`` reports whether the
    store is reachable.
    """
    try:
        db.execute(text("SELECT 1"))
        return HealthResponse(ok=True, database="ok")
    except SQLAlchemyError as e:
        log.warning(f"Health check warning: {e}")
        return HealthResponse(ok=True, database="unavailable")
