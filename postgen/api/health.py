"""
Health check endpoints - used by load balancers and monitoring.

- GET /health       - basic liveness (always 200 if app running)
- GET /health/ready - readiness check (session cache + configured providers)
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from postgen import __version__
from postgen.api.deps import get_container
from postgen.container import ServiceContainer

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(container: ServiceContainer = Depends(get_container)):
    """
    Readiness check - verifies the session cache is reachable and an LLM is configured.
    Similarity and research are optional and reported but not required.
    """
    checks = {
        "session_cache": False,
        "llm": container.llm is not None,
        "similarity": container.similarity is not None,
        "research": container.research is not None,
    }

    try:
        checks["session_cache"] = await container.session_cache.ping()
    except Exception as e:
        logger.warning("Session cache health check failed: %s", str(e))

    ready = checks["session_cache"] and checks["llm"]
    return {
        "status": "ready" if ready else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
