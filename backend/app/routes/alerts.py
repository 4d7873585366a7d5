"""
Alert Endpoints
Manual closure of shortage requests by the requesting hospital
"""

from fastapi import APIRouter, Depends, Path, Security

from agents.context import AgentContext
from agents.nodes.coordinator import close_request

from ..models import AgentResponse, CloseAlertRequest
from ..database import get_agent_context
from ..auth import verify_api_key

router = APIRouter(prefix="/api/v1/alerts", tags=["Alerts"])


@router.post("/{request_id}/close", response_model=AgentResponse)
def close_alert(
    body: CloseAlertRequest,
    request_id: str = Path(..., description="Shortage request identifier"),
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """
    Close a shortage request

    Reserved inventory is released unless the blood came from inventory.
    """
    result = close_request(ctx, request_id, body.fulfillment_source, body.notes)
    return AgentResponse(success=True, result=result)
