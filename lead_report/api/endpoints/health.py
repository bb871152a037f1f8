"""Health check endpoints."""

from fastapi import APIRouter

from ...config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Liveness probe with the report configuration this instance serves.

    No CRM call is made; a healthy instance may still fail to reach Zoho.

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "environment": settings.environment,
        "lead_module": settings.lead_module,
        "week_policy": settings.week_policy,
        "target_year": settings.target_year,
    }
