"""
Donor Response Endpoints
Accept/decline links sent in donor alerts; no API key, the token authorizes
"""

from fastapi import APIRouter, Depends, Query

from agents.context import AgentContext
from agents.nodes.coordinator import respond_to_notification

from ..models import DonorRespondRequest, DonorRespondResponse
from ..database import get_agent_context

router = APIRouter(prefix="/api/v1/donor", tags=["Donor"])


def _respond(ctx: AgentContext, token: str, status: str) -> DonorRespondResponse:
    result = respond_to_notification(ctx, token, status)
    return DonorRespondResponse(
        success=True,
        message=result.message,
        status=result.status,
        eta_minutes=result.eta_minutes,
    )


@router.get("/respond", response_model=DonorRespondResponse)
def respond_via_link(
    token: str = Query(..., description="Response token from the alert link"),
    status: str = Query(..., description="accept or decline"),
    ctx: AgentContext = Depends(get_agent_context),
):
    """
    Record a donor's answer from the link in their alert

    Query params:
    - **token**: "{donorId}-{requestId}-{issuedAtMillis}", valid for 4 hours
    - **status**: accept or decline
    """
    return _respond(ctx, token, status)


@router.post("/respond", response_model=DonorRespondResponse)
def respond_via_form(body: DonorRespondRequest, ctx: AgentContext = Depends(get_agent_context)):
    """Same as the GET link, for clients that post a form"""
    return _respond(ctx, body.token, body.status)
