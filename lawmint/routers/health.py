"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import logging

from lawmint.database import get_db
from lawmint.models.schemas import HealthCheckResponse
from lawmint.services.llm_client import LLMClient
from lawmint.utils.helpers import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of database and LLM provider.
        ``llm`` is "unconfigured" when no API key is set; no request is made then.
    """
    # Check database connection
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "error"

    # Check LLM provider
    llm_status = await LLMClient().check_health()

    # Overall status; an unconfigured LLM does not make the service unhealthy
    overall_status = "healthy" if db_status == "ok" and llm_status != "error" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        llm=llm_status,
        timestamp=utcnow(),
    )
