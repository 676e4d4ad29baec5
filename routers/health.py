"""Health check and status endpoints."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from exceptions import StoreUnavailable
from routers.dependencies import get_store
from utils.record_store import RecordStore
from version import __version__

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Simple liveness check for load balancers."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@router.get("/health/detailed")
async def detailed_health_check(store: RecordStore = Depends(get_store)):
    """Health check including a record store round trip."""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        "checks": {}
    }

    try:
        if await store.ping():
            health_status["checks"]["record_store"] = {
                "status": "healthy",
                "message": "Query round trip successful"
            }
        else:
            health_status["checks"]["record_store"] = {
                "status": "degraded",
                "message": "Unexpected ping result"
            }
            health_status["status"] = "degraded"
    except StoreUnavailable as e:
        logger.warning(f"⚠️ Health check: record store unavailable: {e}")
        health_status["checks"]["record_store"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "unhealthy"

    status_code = 503 if health_status["status"] == "unhealthy" else 200
    return JSONResponse(content=health_status, status_code=status_code)
