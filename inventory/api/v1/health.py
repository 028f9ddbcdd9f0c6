"""Health check endpoint with database connectivity check."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from inventory.core.database import check_db_connected, get_db
from inventory.schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def get_health(request: Request, db: Annotated[Session, Depends(get_db)]) -> HealthResponse:
    """
    Return service health and database connectivity.
    Used by load balancers and monitoring; no authentication required.
    """
    settings = request.app.state.settings
    return HealthResponse(
        environment=settings.APP_ENV,
        version=request.app.version,
        database="connected" if check_db_connected(db) else "disconnected",
    )
