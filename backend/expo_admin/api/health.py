# expo_admin/api/health.py

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from expo_admin.core.database import get_db
from expo_admin.storage.search_index import search_index_sync

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)):
    """Detailed health check including database and search index status"""

    health = {
        "status": "ok",
        "services": {}
    }

    # Check PostgreSQL
    try:
        await db.execute(text("SELECT 1"))
        health["services"]["database"] = "connected"
    except Exception as e:
        health["services"]["database"] = f"error: {str(e)}"
        health["status"] = "degraded"

    # Search index is best-effort: report it, never degrade on it
    health["services"]["search_index"] = "configured" if search_index_sync.enabled else "disabled"

    return health
