"""
Coordinator Agent Node

Owns the donor side of a request after notification: records responses,
arbitrates between donors who accepted, falls back to inventory when nobody
answers in time and closes the loop when the donor arrives.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

from langsmith import traceable
from pydantic import BaseModel, Field

from haemo_core.decisions import AgentType, AuditNote, DonorSelectionDecision
from haemo_core.domain import DonorCandidateResponse
from haemo_core.event_log import EventType
from haemo_core.exceptions import HaemoFlowError, NotFoundError, ValidationError
from haemo_core.models.geo import haversine_km
from haemo_core.models.scoring import (
    estimate_travel_minutes,
    match_health_score,
    match_score,
    reliability_rate,
)
from haemo_core.utils.prompts import reason_about_donor_selection

from ..config import AgentConfig
from ..context import AgentContext
from ..task_queue import AgentTask
from ..tools import notifier as messages
from ..tools.tokens import parse_token
from .inventory import release_reserved_units
from .locks import release_selection_lock, selection_lock
from .logistics import calculate_donor_eta
from .outcomes import historical_patterns, track_decision_outcome, traffic_conditions

logger = logging.getLogger(__name__)

_langsmith_project = AgentConfig.LANGSMITH_PROJECT

RESPONSE_STATUSES = {"accept": "accepted", "decline": "declined"}

class DonorResponseResult(BaseModel):
    request_id: str
    donor_id: str
    status: Literal["accepted", "declined"]
    message: str
    first_acceptance: bool = False
    eta_minutes: Optional[int] = None


class ScoredCandidate(BaseModel):
    response_id: str
    donor_id: str
    donor_name: str
    distance_km: float
    eta_minutes: int
    reliability_rate: float
    health_score: float
    match_score: float


class MatchSelection(BaseModel):
    request_id: str
    status: Literal["matched", "already_matched", "already_fulfilled", "no_acceptances"]
    selected_donor_id: Optional[str] = None
    match_score: Optional[float] = None
    eta_minutes: Optional[int] = None
    rejected_donor_ids: List[str] = Field(default_factory=list)
    decision_id: Optional[str] = None


class TimeoutResult(BaseModel):
    request_id: str
    status: Literal["fallback_triggered", "donors_accepted", "already_advanced"]
    message: str


# ============================================
# Donor responses
# ============================================

@traceable(name="donor_respond", project_name=_langsmith_project)
def respond_to_notification(ctx: AgentContext, token: str, status: str) -> DonorResponseResult:
    """Entry point behind the accept/decline links in a donor alert"""
    now = ctx.now()
    parsed = parse_token(token, now)

    if status not in RESPONSE_STATUSES:
        raise ValidationError("Invalid status. Must be 'accept' or 'decline'", details={"status": status})
    response_status = RESPONSE_STATUSES[status]

    response = ctx.repos.responses.find(parsed.request_id, parsed.donor_id, status="notified")
    if response is None:
        raise NotFoundError(
            "DonorCandidateResponse",
            f"{parsed.donor_id}/{parsed.request_id}",
            message="Response record not found or already processed",
        )

    response_time_ms = int((now - response.notified_at).total_seconds() * 1000)

    eta_minutes = None
    expected_arrival = None
    if response_status == "accepted":
        request = ctx.repos.requests.get(parsed.request_id)
        if request is not None:
            try:
                eta = calculate_donor_eta(ctx, parsed.donor_id, request.hospital_id, parsed.request_id)
                eta_minutes = eta.recommended_eta
                expected_arrival = now + timedelta(minutes=eta_minutes)
            except HaemoFlowError as e:
                logger.warning(f"[Coordinator Agent] Could not estimate ETA for {parsed.donor_id}: {e.message}")

    result = process_donor_response(
        ctx,
        request_id=parsed.request_id,
        donor_id=parsed.donor_id,
        status=response_status,
        response_time_ms=response_time_ms,
        expected_arrival=expected_arrival,
    )

    if response_status == "accepted":
        eta_text = f" Estimated travel time: {eta_minutes} minutes." if eta_minutes else ""
        message = f"Thank you for accepting! Hospital details have been sent to you.{eta_text}"
    else:
        message = "Thank you for letting us know. We'll reach out for future needs."

    return result.model_copy(update={"message": message, "eta_minutes": eta_minutes})


@traceable(name="coordinator_response", project_name=_langsmith_project)
def process_donor_response(
    ctx: AgentContext,
    request_id: str,
    donor_id: str,
    status: str,
    response_time_ms: int,
    expected_arrival: Optional[datetime] = None,
) -> DonorResponseResult:
    """Record an accept/decline and advance the request on first acceptance"""
    logger.info(f"[Coordinator Agent] Processing {status} from donor {donor_id} for request {request_id}")

    if status not in ("accepted", "declined"):
        raise ValidationError(f"Invalid response status: {status}")

    response = ctx.repos.responses.find(request_id, donor_id, status="notified")
    if response is None:
        raise NotFoundError(
            "DonorCandidateResponse",
            f"{donor_id}/{request_id}",
            message="Response record not found or already processed",
        )

    now = ctx.now()
    fields = {
        "responded_at": now,
        "response_time_ms": response_time_ms,
        "status": status,
        "alert_status": "confirmed" if status == "accepted" else "declined",
    }
    if expected_arrival is not None:
        fields["expected_arrival"] = expected_arrival
    ctx.repos.responses.update(response.id, **fields)

    ctx.events.publish(
        EventType.DONOR_RESPONSE,
        {
            "request_id": request_id,
            "donor_id": donor_id,
            "status": status,
            "response_time_ms": response_time_ms,
        },
        producing_agent=AgentType.COORDINATOR.value,
        request_id=request_id,
    )

    ctx.record_decision(
        AgentType.COORDINATOR,
        "donor_response_received",
        AuditNote(
            summary=f"Donor {donor_id} {status}",
            details={"donor_id": donor_id, "status": status, "response_time_ms": response_time_ms},
            reasoning=f"Donor {status} the request. Response time: {response_time_ms // 1000}s",
            confidence=1.0,
        ),
        request_id=request_id,
    )

    if status == "declined":
        return DonorResponseResult(
            request_id=request_id, donor_id=donor_id, status=status,
            message="Donor response (declined) recorded successfully",
        )

    request = ctx.repos.requests.get(request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", request_id)

    _send_hospital_details(ctx, request, donor_id, response)

    first_acceptance = request.status in ("pending", "notified")
    if first_acceptance:
        ctx.repos.requests.update(request_id, status="matching")
        workflow = ctx.repos.workflows.get(request_id)
        if workflow is not None and workflow.status in ("pending", "donors_notified"):
            ctx.repos.workflows.update(
                request_id,
                status="matching",
                current_step="donor_accepted",
                metadata={**workflow.metadata, "first_accepted_at": now.isoformat()},
            )

    if request.urgency == "critical":
        ctx.enqueue(AgentTask.SELECT_OPTIMAL_MATCH, request_id=request_id)

    return DonorResponseResult(
        request_id=request_id,
        donor_id=donor_id,
        status=status,
        message="Donor response (accepted) recorded successfully",
        first_acceptance=first_acceptance,
    )


def _send_hospital_details(ctx: AgentContext, request, donor_id: str, response: DonorCandidateResponse) -> None:
    hospital = ctx.repos.hospitals.get(request.hospital_id)
    donor = ctx.repos.donors.get(donor_id)
    if hospital is None or donor is None:
        return

    distance = _distance_to(donor, hospital, response)
    try:
        ctx.notifier.send(messages.hospital_details(donor, request, hospital, estimate_travel_minutes(distance)))
        logger.info(f"[Coordinator Agent] Hospital details sent to {donor.full_name}")
    except Exception as e:
        logger.warning(f"[Coordinator Agent] Failed to send hospital details to {donor_id}: {e}")


def _distance_to(donor, hospital, response: Optional[DonorCandidateResponse] = None) -> float:
    if None not in (donor.latitude, donor.longitude, hospital.latitude, hospital.longitude):
        return haversine_km(hospital.latitude, hospital.longitude, donor.latitude, donor.longitude)
    if response is not None and response.distance_km is not None:
        return response.distance_km
    return 0.0


# ============================================
# Selection
# ============================================

def _score_candidates(ctx: AgentContext, request, hospital, accepted: List[DonorCandidateResponse]) -> List[ScoredCandidate]:
    scored = []
    for response in accepted:
        donor = ctx.repos.donors.get(response.donor_id)
        if donor is None:
            logger.warning(f"[Coordinator Agent] Accepted donor {response.donor_id} no longer exists")
            continue

        distance = _distance_to(donor, hospital, response)
        eta = estimate_travel_minutes(distance)

        history = ctx.repos.responses.list_for_donor(donor.id)
        answered = sum(1 for r in history if r.status in ("accepted", "declined"))
        confirmed = sum(1 for r in history if r.confirmed)
        reliability = reliability_rate(confirmed, answered)
        health = match_health_score(donor.hemoglobin, donor.gender)

        scored.append(ScoredCandidate(
            response_id=response.id,
            donor_id=donor.id,
            donor_name=donor.full_name,
            distance_km=distance,
            eta_minutes=eta,
            reliability_rate=reliability,
            health_score=health,
            match_score=match_score(eta, distance, reliability, health),
        ))
    return scored


@traceable(name="coordinator_select", project_name=_langsmith_project)
def select_optimal_match(ctx: AgentContext, request_id: str) -> MatchSelection:
    """
    Choose one donor among those who accepted.

    At most one successful selection per request: a second call returns
    already_matched without touching the plan.
    """
    with selection_lock(request_id):
        return _select_optimal_match(ctx, request_id)


def _select_optimal_match(ctx: AgentContext, request_id: str) -> MatchSelection:
    logger.info(f"[Coordinator Agent] Selecting optimal match for request {request_id}")

    workflow = ctx.repos.workflows.get(request_id)
    if workflow is None:
        raise NotFoundError("WorkflowState", request_id, message="Workflow state not found")

    if workflow.status == "fulfilled":
        return MatchSelection(request_id=request_id, status="already_fulfilled")
    if workflow.metadata.get("matched_donor_id"):
        logger.info(f"[Coordinator Agent] Donor already selected: {workflow.metadata['matched_donor_id']}")
        return MatchSelection(
            request_id=request_id,
            status="already_matched",
            selected_donor_id=workflow.metadata["matched_donor_id"],
        )

    accepted = [r for r in ctx.repos.responses.list_for_request(request_id, status="accepted") if not r.no_show]
    if not accepted:
        logger.info(f"[Coordinator Agent] No donors accepted yet for request {request_id}")
        return MatchSelection(request_id=request_id, status="no_acceptances")

    request = ctx.repos.requests.get(request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", request_id)
    hospital = ctx.repos.hospitals.get(request.hospital_id)
    if hospital is None:
        raise NotFoundError("Hospital", request.hospital_id)

    scored = _score_candidates(ctx, request, hospital, accepted)
    if not scored:
        return MatchSelection(request_id=request_id, status="no_acceptances")

    now = ctx.now()
    local_now = ctx.local_now()
    outcome = reason_about_donor_selection(
        ctx.reasoning,
        [c.model_dump() for c in scored],
        {
            "blood_type": request.blood_type,
            "urgency": request.urgency,
            "units_needed": request.units_needed,
            "time_of_day": local_now.strftime("%H:%M"),
            "traffic_conditions": traffic_conditions(local_now.hour),
            "historical_patterns": historical_patterns(ctx, AgentType.COORDINATOR),
        },
    )

    if outcome.ok:
        selected = scored[outcome.value.selected_index]
        reasoning, confidence, source = outcome.value.reasoning, outcome.value.confidence, "reasoning"
        logger.info(f"[Coordinator Agent] Reasoning selected {selected.donor_name} (confidence {confidence:.2f})")
    else:
        logger.warning(f"[Coordinator Agent] Selection reasoning failed, using match score: {outcome.error.message}")
        selected = max(scored, key=lambda c: c.match_score)
        reasoning = (
            f"Algorithmic selection: highest match score ({selected.match_score}/100). "
            f"ETA: {selected.eta_minutes} min, distance: {selected.distance_km:.1f} km."
        )
        confidence, source = min(1.0, selected.match_score / 100), "fallback"

    rejected = [c for c in scored if c.donor_id != selected.donor_id]
    estimated_completion = now + timedelta(minutes=selected.eta_minutes)

    metadata = {
        **workflow.metadata,
        "matched_donor_id": selected.donor_id,
        "matched_donor_name": selected.donor_name,
        "match_score": selected.match_score,
        "eta_minutes": selected.eta_minutes,
        "matched_at": now.isoformat(),
    }
    if workflow.fulfillment_plan.get("method") == "inventory":
        # Inventory already on its way; keep it visible alongside the donor plan
        metadata["inventory_plan"] = workflow.fulfillment_plan

    ctx.repos.workflows.update(
        request_id,
        status="matching",
        current_step="donor_matched",
        metadata=metadata,
        fulfillment_plan={
            "method": "donor",
            "confidence": confidence,
            "estimated_completion": estimated_completion.isoformat(),
            "selected_donor": selected.model_dump(),
            "rejected_donors": [
                {"donor_id": c.donor_id, "donor_name": c.donor_name, "match_score": c.match_score}
                for c in rejected
            ],
        },
    )

    record = ctx.record_decision(
        AgentType.COORDINATOR,
        "fulfillment_decision",
        DonorSelectionDecision(
            selected_donor_id=selected.donor_id,
            selected_response_id=selected.response_id,
            match_score=selected.match_score,
            eta_minutes=selected.eta_minutes,
            distance_km=selected.distance_km,
            rejected_donor_ids=[c.donor_id for c in rejected],
            reasoning=reasoning,
            confidence=confidence,
            source=source,
        ),
        request_id=request_id,
        raw_context={"candidates": [c.model_dump() for c in scored], "fallback_plan": "inventory_search_if_no_show"},
    )

    _notify_selection(ctx, request, hospital, selected, rejected)
    ctx.repos.requests.update(request_id, status="matched")

    return MatchSelection(
        request_id=request_id,
        status="matched",
        selected_donor_id=selected.donor_id,
        match_score=selected.match_score,
        eta_minutes=selected.eta_minutes,
        rejected_donor_ids=[c.donor_id for c in rejected],
        decision_id=record.id,
    )


def _notify_selection(ctx: AgentContext, request, hospital, selected: ScoredCandidate, rejected: List[ScoredCandidate]):
    donor = ctx.repos.donors.get(selected.donor_id)
    try:
        ctx.notifier.send(messages.selection_confirmed(donor, request, hospital, selected.eta_minutes))
        logger.info(f"[Coordinator Agent] Confirmation sent to {selected.donor_name}")
    except Exception as e:
        logger.warning(f"[Coordinator Agent] Failed to notify selected donor {selected.donor_id}: {e}")

    for candidate in rejected:
        try:
            ctx.notifier.send(messages.not_selected(ctx.repos.donors.get(candidate.donor_id), request, hospital))
        except Exception as e:
            logger.warning(f"[Coordinator Agent] Failed to notify rejected donor {candidate.donor_id}: {e}")

    if rejected:
        logger.info(f"[Coordinator Agent] Sent 'not selected' messages to {len(rejected)} donor(s)")


# ============================================
# Timeouts
# ============================================

@traceable(name="coordinator_timeout", project_name=_langsmith_project)
def handle_no_response_timeout(ctx: AgentContext, request_id: str) -> TimeoutResult:
    """No donor accepted within the response window: fall back to inventory"""
    logger.info(f"[Coordinator Agent] Handling no-response timeout for request {request_id}")

    workflow = ctx.repos.workflows.get(request_id)
    if workflow is None:
        raise NotFoundError("WorkflowState", request_id, message="Workflow state not found")

    # An acceptance may have landed while the timeout was queued
    if ctx.repos.responses.list_for_request(request_id, status="accepted"):
        logger.info("[Coordinator Agent] Donors accepted during timeout window, aborting timeout handler")
        return TimeoutResult(request_id=request_id, status="donors_accepted", message="Donors already accepted")

    if workflow.status not in ("pending", "donors_notified") or workflow.metadata.get("fallback_triggered"):
        return TimeoutResult(
            request_id=request_id,
            status="already_advanced",
            message=f"Workflow already at {workflow.status}/{workflow.current_step}",
        )

    now = ctx.now()
    ctx.repos.workflows.update(
        request_id,
        status="pending",
        current_step="no_donor_response_timeout",
        metadata={**workflow.metadata, "timeout_at": now.isoformat(), "fallback_triggered": True},
    )

    ctx.record_decision(
        AgentType.COORDINATOR,
        "timeout_fallback",
        AuditNote(
            summary="No donor accepted within the response window",
            details={"response_window_minutes": ctx.response_window_minutes},
            reasoning="No donors accepted within the response window. Triggering inventory search as fallback.",
            confidence=1.0,
        ),
        request_id=request_id,
    )

    ctx.enqueue(AgentTask.INVENTORY_SEARCH, request_id=request_id)
    logger.info(f"[Coordinator Agent] Inventory fallback triggered for {request_id}")
    return TimeoutResult(
        request_id=request_id,
        status="fallback_triggered",
        message="Timeout handled, inventory search triggered",
    )


def check_response_deadlines(ctx: AgentContext) -> Dict:
    """Poll open workflows and act on every response window that has closed"""
    now = ctx.now()
    checked = 0
    selections: List[str] = []
    timeouts: List[str] = []

    workflows = ctx.repos.workflows.list_by_status("donors_notified") + ctx.repos.workflows.list_by_status("matching")
    for workflow in workflows:
        deadline = workflow.metadata.get("response_deadline")
        if not deadline or workflow.metadata.get("matched_donor_id") or workflow.metadata.get("fallback_triggered"):
            continue
        checked += 1
        if now < datetime.fromisoformat(deadline):
            continue

        if ctx.repos.responses.list_for_request(workflow.request_id, status="accepted"):
            ctx.enqueue(AgentTask.SELECT_OPTIMAL_MATCH, request_id=workflow.request_id)
            selections.append(workflow.request_id)
        else:
            ctx.enqueue(AgentTask.HANDLE_TIMEOUT, request_id=workflow.request_id)
            timeouts.append(workflow.request_id)

    if selections or timeouts:
        logger.info(
            f"[Coordinator Agent] Deadlines passed: {len(selections)} selections, {len(timeouts)} timeouts queued"
        )
    return {"checked": checked, "selections_queued": selections, "timeouts_queued": timeouts}


# ============================================
# Completion
# ============================================

def _accepted_response(ctx: AgentContext, request_id: str, donor_id: str) -> DonorCandidateResponse:
    response = ctx.repos.responses.find(request_id, donor_id, status="accepted")
    if response is None:
        raise NotFoundError(
            "DonorCandidateResponse",
            f"{donor_id}/{request_id}",
            message="No accepted response for this donor and request",
        )
    return response


def _track_selection_outcome(ctx: AgentContext, request_id: str, outcome: str, details: Dict) -> None:
    decisions = ctx.repos.decisions.query(request_id=request_id, event_type="fulfillment_decision")
    if decisions:
        track_decision_outcome(ctx, decisions[-1].id, outcome, details)


@traceable(name="coordinator_arrival", project_name=_langsmith_project)
def confirm_arrival(ctx: AgentContext, request_id: str, donor_id: str) -> Dict:
    """Donor showed up and donated: the request is fulfilled"""
    response = _accepted_response(ctx, request_id, donor_id)
    request = ctx.repos.requests.get(request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", request_id)

    now = ctx.now()
    ctx.repos.responses.update(response.id, confirmed=True, no_show=False)

    workflow = ctx.repos.workflows.get(request_id)
    ctx.repos.workflows.update(
        request_id,
        status="fulfilled",
        current_step="completed",
        fulfilled_at=now,
        metadata={**workflow.metadata, "arrived_donor_id": donor_id, "arrived_at": now.isoformat()},
    )
    ctx.repos.requests.update(request_id, status="fulfilled", fulfilled_at=now, fulfillment_source="donor")

    fulfillment_minutes = round((now - request.created_at).total_seconds() / 60)
    ctx.record_decision(
        AgentType.COORDINATOR,
        "fulfillment_completed",
        AuditNote(
            summary=f"Donor {donor_id} arrived and donated",
            details={"donor_id": donor_id, "fulfillment_minutes": fulfillment_minutes},
            confidence=1.0,
        ),
        request_id=request_id,
    )
    _track_selection_outcome(ctx, request_id, "success", {"fulfillment_minutes": fulfillment_minutes})
    release_selection_lock(request_id)

    logger.info(f"[Coordinator Agent] Request {request_id} fulfilled by donor {donor_id}")
    return {"request_id": request_id, "donor_id": donor_id, "fulfilled_at": now.isoformat()}


def mark_no_show(ctx: AgentContext, request_id: str, donor_id: str) -> Dict:
    """Matched donor never arrived; reopen the request and search inventory"""
    response = _accepted_response(ctx, request_id, donor_id)
    ctx.repos.responses.update(response.id, no_show=True, confirmed=False)

    workflow = ctx.repos.workflows.get(request_id)
    if workflow is None:
        raise NotFoundError("WorkflowState", request_id)

    metadata = {**workflow.metadata, "no_show_donor_ids": workflow.metadata.get("no_show_donor_ids", []) + [donor_id]}
    reopened = metadata.get("matched_donor_id") == donor_id
    if reopened:
        metadata.pop("matched_donor_id", None)
        ctx.repos.workflows.update(
            request_id, status="pending", current_step="donor_no_show", metadata=metadata, fulfillment_plan={}
        )
        ctx.repos.requests.update(request_id, status="notified")
        _track_selection_outcome(ctx, request_id, "failure", {"reason": "no_show", "donor_id": donor_id})
        ctx.enqueue(AgentTask.INVENTORY_SEARCH, request_id=request_id)
    else:
        ctx.repos.workflows.update(request_id, metadata=metadata)

    ctx.record_decision(
        AgentType.COORDINATOR,
        "donor_no_show",
        AuditNote(summary=f"Donor {donor_id} did not arrive", details={"reopened": reopened}, confidence=1.0),
        request_id=request_id,
    )
    logger.info(f"[Coordinator Agent] Donor {donor_id} marked no-show for {request_id}")
    return {"request_id": request_id, "donor_id": donor_id, "inventory_search_triggered": reopened}


def close_request(
    ctx: AgentContext, request_id: str, fulfillment_source: str = "other", notes: Optional[str] = None
) -> Dict:
    """Hospital closes the alert by hand, whatever path delivered the blood"""
    request = ctx.repos.requests.get(request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", request_id)
    if request.status == "closed":
        return {"request_id": request_id, "status": "closed", "released_units": []}

    now = ctx.now()
    ctx.repos.requests.update(
        request_id,
        status="closed",
        fulfilled_at=request.fulfilled_at or now,
        fulfillment_source=fulfillment_source,
    )

    workflow = ctx.repos.workflows.get(request_id)
    if workflow is not None:
        ctx.repos.workflows.update(
            request_id,
            status="fulfilled",
            current_step="closed_by_hospital",
            fulfilled_at=workflow.fulfilled_at or now,
            metadata={**workflow.metadata, "closed_at": now.isoformat(), "fulfillment_source": fulfillment_source},
        )

    released = [] if fulfillment_source == "inventory" else release_reserved_units(ctx, request_id)

    ctx.record_decision(
        AgentType.COORDINATOR,
        "request_closed",
        AuditNote(
            summary=f"Request closed by hospital ({fulfillment_source})",
            details={"notes": notes, "released_units": released},
            confidence=1.0,
        ),
        request_id=request_id,
    )

    release_selection_lock(request_id)

    logger.info(f"[Coordinator Agent] Request {request_id} closed ({fulfillment_source})")
    return {"request_id": request_id, "status": "closed", "released_units": released}
