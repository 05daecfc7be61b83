"""
Health check endpoints.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter

router = APIRouter()
logger = logging.getLogger("app.health")

SERVICE_NAME = "CourtFlow"
SERVICE_VERSION = "0.1.0"


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for Kubernetes/Docker health checks.

    Returns:
        Dict with status information
    """
    logger.info("Health check requested")

    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }
