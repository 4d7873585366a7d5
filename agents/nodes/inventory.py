"""Inventory Agent Node"""

import logging
from datetime import timedelta
from typing import List, Optional

from langsmith import traceable
from pydantic import BaseModel

from haemo_core.config import INVENTORY_CONFIG
from haemo_core.decisions import AgentType, AuditNote, InventorySelectionDecision
from haemo_core.domain import Hospital, InventoryUnit, ShortageRequest, TransportRequest
from haemo_core.event_log import EventType
from haemo_core.exceptions import AlreadyReservedError, NotFoundError
from haemo_core.models.compatibility import compatible_donor_types
from haemo_core.models.geo import haversine_km
from haemo_core.models.scoring import InventoryScores, score_inventory_unit
from haemo_core.utils.prompts import reason_about_inventory_selection

from ..config import AgentConfig
from ..context import AgentContext
from ..task_queue import AgentTask

logger = logging.getLogger(__name__)

_langsmith_project = AgentConfig.LANGSMITH_PROJECT

# Candidates shown to the reasoning layer
MAX_PROMPT_CANDIDATES = 10


class RankedUnit(BaseModel):
    unit: InventoryUnit
    hospital: Hospital
    distance_km: float
    days_until_expiry: int
    scores: InventoryScores


class InventoryMatchResult(BaseModel):
    request_id: str
    matched: bool = False
    candidates_considered: int = 0
    inventory_id: Optional[str] = None
    source_hospital_id: Optional[str] = None
    units_reserved: int = 0
    transport_id: Optional[str] = None
    skipped: Optional[str] = None


def find_and_rank_inventory(ctx: AgentContext, request: ShortageRequest) -> List[RankedUnit]:
    """Unreserved compatible stock at other facilities, at least a week from expiry"""
    if request.latitude is None or request.longitude is None:
        logger.warning(f"[Inventory Agent] Request {request.id} has no location; cannot rank inventory")
        return []

    now = ctx.now()
    cutoff = now + timedelta(days=INVENTORY_CONFIG["min_days_to_expiry"])
    units = ctx.repos.inventory.list_available(
        compatible_donor_types(request.blood_type), exclude_hospital_id=request.hospital_id, expires_after=cutoff
    )

    hospitals = {}
    ranked = []
    for unit in units:
        if unit.hospital_id not in hospitals:
            hospitals[unit.hospital_id] = ctx.repos.hospitals.get(unit.hospital_id)
        hospital = hospitals[unit.hospital_id]
        if hospital is None or hospital.latitude is None or hospital.longitude is None:
            continue

        distance = haversine_km(request.latitude, request.longitude, hospital.latitude, hospital.longitude)
        ranked.append(RankedUnit(
            unit=unit,
            hospital=hospital,
            distance_km=distance,
            days_until_expiry=(unit.expiry_date - now).days,
            scores=score_inventory_unit(unit, hospital, distance, request.units_needed, now),
        ))

    ranked.sort(key=lambda r: r.scores.final, reverse=True)
    logger.info(f"[Inventory Agent] {len(ranked)} inventory units available for {request.blood_type}")
    return ranked


def _reserve_first_available(ctx: AgentContext, request_id: str, order: List[RankedUnit]) -> Optional[RankedUnit]:
    """Walk the preference order until a conditional reservation succeeds"""
    for candidate in order:
        try:
            reserved = ctx.repos.inventory.reserve(candidate.unit.id, request_id, ctx.now())
        except AlreadyReservedError:
            logger.info(f"[Inventory Agent] Unit {candidate.unit.id} taken by another request, trying next")
            continue
        return candidate.model_copy(update={"unit": reserved})
    return None


@traceable(name="inventory_agent", project_name=_langsmith_project)
def process_inventory_search(ctx: AgentContext, request_id: str) -> InventoryMatchResult:
    """Find, reserve and ship facility stock for a shortage request"""
    logger.info(f"[Inventory Agent] Searching inventory for request {request_id}")

    request = ctx.repos.requests.get(request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", request_id)
    workflow = ctx.repos.workflows.get(request_id)
    if workflow is None:
        raise NotFoundError("WorkflowState", request_id)

    if request.status in ("fulfilled", "closed") or workflow.status == "fulfilled":
        return InventoryMatchResult(request_id=request_id, skipped="request already closed")
    if workflow.metadata.get("matched_donor_id"):
        return InventoryMatchResult(request_id=request_id, skipped="request already matched")
    if workflow.fulfillment_plan.get("method") == "inventory":
        return InventoryMatchResult(request_id=request_id, skipped="inventory already reserved")

    ranked = find_and_rank_inventory(ctx, request)

    if not ranked:
        ctx.record_decision(
            AgentType.INVENTORY,
            "no_inventory_found",
            AuditNote(
                summary=f"No compatible inventory for {request.blood_type} at partner facilities",
                reasoning="Inventory path ends here; request stays open for donors or manual escalation.",
            ),
            request_id=request_id,
        )
        ctx.repos.workflows.update(request_id, current_step="no_inventory_found")
        logger.info(f"[Inventory Agent] No inventory found for {request_id}")
        return InventoryMatchResult(request_id=request_id)

    shortlist = ranked[:MAX_PROMPT_CANDIDATES]
    outcome = reason_about_inventory_selection(
        ctx.reasoning,
        [
            {
                "hospital_name": r.hospital.name,
                "blood_type": r.unit.blood_type,
                "units": r.unit.units,
                "distance_km": r.distance_km,
                "days_until_expiry": r.days_until_expiry,
                "score": r.scores.final,
            }
            for r in shortlist
        ],
        {"blood_type": request.blood_type, "units_needed": request.units_needed, "urgency": request.urgency},
    )

    if outcome.ok:
        choice = outcome.value.selected_index
        reasoning, confidence, source = outcome.value.reasoning, outcome.value.confidence, "reasoning"
    else:
        logger.warning(f"[Inventory Agent] Selection reasoning failed, using top score: {outcome.error.message}")
        choice = 0
        top = ranked[0]
        reasoning = (
            f"Selected {top.hospital.name} with highest score {top.scores.final}/100. "
            f"Distance: {top.distance_km:.1f}km, expires in {top.days_until_expiry} days."
        )
        confidence, source = 0.85, "fallback"

    preference = [ranked[choice]] + [r for i, r in enumerate(ranked) if i != choice]
    selected = _reserve_first_available(ctx, request_id, preference)
    if selected is None:
        ctx.record_decision(
            AgentType.INVENTORY,
            "no_inventory_found",
            AuditNote(
                summary="Every candidate unit was reserved by another request",
                details={"candidates": len(ranked)},
            ),
            request_id=request_id,
        )
        return InventoryMatchResult(request_id=request_id, candidates_considered=len(ranked))

    units_to_reserve = min(selected.unit.units, request.units_needed)
    now = ctx.now()

    ctx.events.publish(
        EventType.INVENTORY_MATCH,
        {
            "request_id": request_id,
            "inventory_id": selected.unit.id,
            "source_hospital_id": selected.hospital.id,
            "blood_type": selected.unit.blood_type,
            "units": units_to_reserve,
            "distance_km": selected.distance_km,
            "score": selected.scores.final,
        },
        producing_agent=AgentType.INVENTORY.value,
        request_id=request_id,
    )

    provisional_eta = now + timedelta(hours=selected.distance_km / INVENTORY_CONFIG["provisional_speed_kmh"])
    transport = TransportRequest(
        request_id=request_id,
        inventory_id=selected.unit.id,
        from_hospital_id=selected.hospital.id,
        to_hospital_id=request.hospital_id,
        blood_type=selected.unit.blood_type,
        units=units_to_reserve,
        distance_km=selected.distance_km,
        transport_method="ambulance" if selected.distance_km < INVENTORY_CONFIG["ambulance_max_km"] else "courier",
        eta=provisional_eta,
        created_at=now,
    )
    ctx.repos.transports.add(transport)

    ctx.record_decision(
        AgentType.INVENTORY,
        "inventory_match",
        InventorySelectionDecision(
            inventory_id=selected.unit.id,
            source_hospital_id=selected.hospital.id,
            units_reserved=units_to_reserve,
            score=selected.scores.final,
            distance_km=selected.distance_km,
            transport_id=transport.id,
            reasoning=reasoning,
            confidence=confidence,
            source=source,
        ),
        request_id=request_id,
        raw_context={"ranked": [
            {"inventory_id": r.unit.id, "hospital_id": r.hospital.id, "score": r.scores.final}
            for r in shortlist
        ]},
    )

    ctx.repos.workflows.update(
        request_id,
        status="fulfillment_in_progress",
        current_step="inventory_matched",
        fulfillment_plan={
            "method": "inventory",
            "inventory_id": selected.unit.id,
            "source_hospital_id": selected.hospital.id,
            "units": units_to_reserve,
            "transport_id": transport.id,
            "estimated_arrival": provisional_eta.isoformat(),
        },
    )

    ctx.enqueue(AgentTask.PLAN_TRANSPORT, transport_id=transport.id)

    logger.info(
        f"[Inventory Agent] Reserved {units_to_reserve} units of {selected.unit.blood_type} "
        f"at {selected.hospital.name} for {request_id}"
    )
    return InventoryMatchResult(
        request_id=request_id,
        matched=True,
        candidates_considered=len(ranked),
        inventory_id=selected.unit.id,
        source_hospital_id=selected.hospital.id,
        units_reserved=units_to_reserve,
        transport_id=transport.id,
    )


def release_reserved_units(ctx: AgentContext, request_id: str) -> List[str]:
    """Free every unit held for an abandoned plan and cancel its pending transports"""
    released = ctx.repos.inventory.release_for(request_id)
    for transport in ctx.repos.transports.list_for_request(request_id):
        if transport.status == "pending":
            ctx.repos.transports.update(transport.id, status="cancelled")
    logger.info(f"[Inventory Agent] Released {len(released)} reserved units for {request_id}")
    return [unit.id for unit in released]
