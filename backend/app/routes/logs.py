"""
Audit Log Endpoints
Events, decisions and workflow state for dashboards and post-incident review
"""

from fastapi import APIRouter, Depends, Path, Query, Security
from typing import Optional

from agents.context import AgentContext
from haemo_core.exceptions import NotFoundError

from ..models import AgentLogsResponse, DecisionListResponse
from ..database import get_agent_context
from ..auth import verify_api_key

router = APIRouter(prefix="/api/v1", tags=["Audit"])


@router.get("/agent-logs/{request_id}", response_model=AgentLogsResponse)
def get_request_logs(
    request_id: str = Path(..., description="Shortage request identifier"),
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """
    Full audit trail for one request

    Returns:
        The request, its workflow state, every event and every agent decision
    """
    request = ctx.repos.requests.get(request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", request_id)
    workflow = ctx.repos.workflows.get(request_id)

    return AgentLogsResponse(
        request_id=request_id,
        request=request.model_dump(mode="json"),
        workflow=workflow.model_dump(mode="json") if workflow else None,
        events=[e.model_dump(mode="json") for e in ctx.events.for_request(request_id)],
        decisions=[d.model_dump(mode="json") for d in ctx.repos.decisions.query(request_id=request_id)],
    )


@router.get("/agents/logs", response_model=DecisionListResponse)
def list_decisions(
    agent_type: Optional[str] = Query(None, description="Filter by agent (hospital, donor, coordinator, ...)"),
    event_type: Optional[str] = Query(None, description="Filter by decision event type"),
    limit: int = Query(50, ge=1, le=500, description="Most recent N decisions"),
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """Recent agent decisions, newest first"""
    decisions = ctx.repos.decisions.query(agent_type=agent_type, event_type=event_type)
    recent = list(reversed(decisions[-limit:]))
    return DecisionListResponse(
        decisions=[d.model_dump(mode="json") for d in recent],
        count=len(recent),
    )
