"""
Agent Trigger Endpoints
Entry points for the hospital, coordinator, inventory, logistics and verification agents
"""

from fastapi import APIRouter, Depends, HTTPException, Security
from fastapi.encoders import jsonable_encoder
from typing import Optional

from agents.context import AgentContext
from agents.nodes import coordinator, hospital, inventory, logistics, verification
from haemo_core.exceptions import HaemoFlowError, ValidationError

from ..models import (
    AgentResponse,
    CoordinatorActionRequest,
    HospitalAlertRequest,
    InventoryCheckRequest,
    InventorySearchRequest,
    LogisticsActionRequest,
    VerificationRequest,
)
from ..database import get_agent_context
from ..auth import verify_api_key

router = APIRouter(prefix="/api/v1/agents", tags=["Agents"])


def _require(action: str, **fields: Optional[object]) -> None:
    missing = [name for name, value in fields.items() if value is None]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} required for action '{action}'",
            details={"missing": missing},
        )


def _ok(result) -> AgentResponse:
    if hasattr(result, "model_dump"):
        result = result.model_dump(mode="json")
    return AgentResponse(success=True, result=jsonable_encoder(result))


@router.post("/hospital", response_model=AgentResponse)
def submit_hospital_alert(
    body: HospitalAlertRequest,
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """
    Submit a stock reading or an explicit shortage request

    Returns:
        Shortage assessment and, when a shortage was detected, the created request
    """
    try:
        outcome = hospital.process_stock_alert(ctx, hospital.StockAlert(**body.model_dump()))
        return _ok(outcome)
    except HaemoFlowError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to process hospital alert: {str(e)}")


@router.post("/hospital/check-inventory", response_model=AgentResponse)
def check_inventory(
    body: InventoryCheckRequest,
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """Auto-alert check for one hospital and blood type"""
    return _ok(hospital.check_inventory_and_auto_alert(ctx, body.hospital_id, body.blood_type))


@router.post("/hospital/monitor", response_model=AgentResponse)
def monitor_hospitals(
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """Run the auto-alert check for every approved hospital"""
    return _ok(hospital.monitor_all_hospitals(ctx))


@router.post("/coordinator", response_model=AgentResponse)
def coordinator_action(
    body: CoordinatorActionRequest,
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """
    Coordinator actions

    Actions:
    - **process_donor_response**: request_id, donor_id, status, response_time_ms
    - **select_optimal_match**: request_id
    - **handle_timeout**: request_id
    - **confirm_arrival** / **mark_no_show**: request_id, donor_id
    - **check_deadlines**: no parameters
    """
    action = body.action

    if action == "process_donor_response":
        _require(action, request_id=body.request_id, donor_id=body.donor_id,
                 status=body.status, response_time_ms=body.response_time_ms)
        result = coordinator.process_donor_response(
            ctx, body.request_id, body.donor_id, body.status, body.response_time_ms
        )
    elif action == "select_optimal_match":
        _require(action, request_id=body.request_id)
        result = coordinator.select_optimal_match(ctx, body.request_id)
    elif action == "handle_timeout":
        _require(action, request_id=body.request_id)
        result = coordinator.handle_no_response_timeout(ctx, body.request_id)
    elif action == "confirm_arrival":
        _require(action, request_id=body.request_id, donor_id=body.donor_id)
        result = coordinator.confirm_arrival(ctx, body.request_id, body.donor_id)
    elif action == "mark_no_show":
        _require(action, request_id=body.request_id, donor_id=body.donor_id)
        result = coordinator.mark_no_show(ctx, body.request_id, body.donor_id)
    else:
        result = coordinator.check_response_deadlines(ctx)

    return _ok(result)


@router.post("/inventory", response_model=AgentResponse)
def inventory_search(
    body: InventorySearchRequest,
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """Search, reserve and ship partner inventory for a request"""
    return _ok(inventory.process_inventory_search(ctx, body.request_id))


@router.post("/logistics", response_model=AgentResponse)
def logistics_action(
    body: LogisticsActionRequest,
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """
    Logistics actions

    Actions:
    - **plan_transport**: transport_id
    - **calculate_donor_eta**: donor_id, hospital_id, optional request_id
    - **update_status**: transport_id, status
    """
    action = body.action

    if action == "plan_transport":
        _require(action, transport_id=body.transport_id)
        result = logistics.plan_transport(ctx, body.transport_id)
    elif action == "calculate_donor_eta":
        _require(action, donor_id=body.donor_id, hospital_id=body.hospital_id)
        result = logistics.calculate_donor_eta(ctx, body.donor_id, body.hospital_id, body.request_id)
    else:
        _require(action, transport_id=body.transport_id, status=body.status)
        result = logistics.update_transport_status(ctx, body.transport_id, body.status)

    return _ok(result)


@router.post("/verification", response_model=AgentResponse)
def verify_donor(
    body: VerificationRequest,
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """Record a document check and, when it passed, screen donor eligibility"""
    document_result = verification.DocumentCheckResult(
        all_passed=body.all_passed,
        has_technical_error=body.has_technical_error,
        mismatches=body.mismatches,
    )
    return _ok(verification.process_donor_verification(ctx, body.donor_id, document_result))


@router.get("/verification/stats", response_model=AgentResponse)
def verification_stats(
    ctx: AgentContext = Depends(get_agent_context),
    api_key: str = Security(verify_api_key)
):
    """Verification totals and the most common failed criteria"""
    return _ok(verification.get_verification_stats(ctx))
