import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.config import settings
from ....core.database import get_async_db

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def get_health(db: AsyncSession = Depends(get_async_db)):
    """Liveness plus a database round trip. No authentication."""
    start_time = time.time()
    database = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unhealthy"

    return {
        "status": "healthy" if database == "healthy" else "degraded",
        "timestamp": time.time(),
        "service": settings.app_name,
        "environment": settings.environment,
        "database": {
            "status": database,
            "response_time": round((time.time() - start_time) * 1000, 2),
        },
    }
