"""
Health Check Endpoints
System health and agent queue status
"""

from fastapi import APIRouter, Depends
from datetime import datetime

from agents.context import AgentContext

from ..models import HealthResponse
from ..database import get_agent_context
from ..config import get_settings

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(ctx: AgentContext = Depends(get_agent_context)):
    """
    Basic health check endpoint

    Returns:
        API status, storage backend and queued agent tasks
    """
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        version=settings.app_version,
        storage_backend=settings.storage_backend,
        pending_tasks=ctx.tasks.pending(),
    )
