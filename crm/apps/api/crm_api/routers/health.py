"""Health check endpoint."""

import logging

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from crm_api.db.session import engine

router = APIRouter()
logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    services: dict[str, str]


def check_database() -> str:
    """Check database connectivity.

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "up"
    except SQLAlchemyError as e:
        logger.error("health.database.down", extra={"error_type": type(e).__name__})
        return f"down: {type(e).__name__}"


@router.get("/health", response_model=HealthResponse)
def health_check(response: Response) -> HealthResponse:
    """Service status and database health. 503 when the database is down."""
    services = {"api": "up", "database": check_database()}

    if services["database"] != "up":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="unhealthy", version=API_VERSION, services=services)

    return HealthResponse(status="healthy", version=API_VERSION, services=services)
