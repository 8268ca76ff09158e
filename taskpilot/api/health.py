from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from taskpilot.api.schemas import HealthzResponse, ReadinessChecks, ReadyzResponse
from taskpilot.core.config import get_settings
from taskpilot.core.logging import get_logger
from taskpilot.db.session import session_scope

router = APIRouter()
logger = get_logger("taskpilot.api.health")


@router.get("/healthz", response_model=HealthzResponse)
def healthz() -> HealthzResponse:
    settings = get_settings()
    return HealthzResponse(status="ok", service=settings.app_name, env=settings.app_env)


@router.get("/readyz", response_model=ReadyzResponse)
def readyz() -> ReadyzResponse:
    database = "ok"
    try:
        with session_scope() as session:
            session.exec(text("SELECT 1"))  # type: ignore[call-overload]
    except SQLAlchemyError:
        logger.exception("health.database_unreachable")
        database = "error"
    return ReadyzResponse(
        status="ready" if database == "ok" else "degraded",
        checks=ReadinessChecks(configuration="ok", database=database),
    )
