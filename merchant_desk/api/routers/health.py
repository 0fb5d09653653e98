"""Health check API router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text

from merchant_desk.infra.database import get_db
from merchant_desk.infra.metrics import get_metrics_response
from merchant_desk.services.orchestrator import get_orchestrator

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health_check():
    """Combined health check endpoint."""
    snapshot = get_orchestrator().resolver.snapshot
    return {
        "status": "ok",
        "service": "merchant-desk",
        "version": "1.0.0",
        "mapped_channels": len(snapshot),
    }


@router.get("/health/live", tags=["Health"])
async def liveness_probe():
    """Liveness probe - indicates if the process is running."""
    return {"status": "alive"}


@router.get("/health/ready", tags=["Health"])
async def readiness_probe(db: Session = Depends(get_db)):
    """Readiness probe - checks database connectivity and that mappings are loaded."""
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        return JSONResponse({"status": "not_ready", "reason": "database"}, status_code=503)
    if not get_orchestrator().resolver.loaded:
        return JSONResponse({"status": "not_ready", "reason": "channel mappings"}, status_code=503)
    return {"status": "ready"}


@router.get("/metrics", tags=["Health"])
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
