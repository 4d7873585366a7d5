"""Logistics Agent Node"""

import logging
import math
from datetime import datetime, timedelta
from typing import Dict, Optional

from langsmith import traceable
from pydantic import BaseModel

from haemo_core.config import LOGISTICS_CONFIG
from haemo_core.decisions import AgentType, AuditNote, DonorEtaDecision, TransportDecision
from haemo_core.event_log import EventType
from haemo_core.exceptions import ColdChainViolationError, NotFoundError, ValidationError
from haemo_core.models.geo import haversine_km
from haemo_core.utils.prompts import reason_about_transport

from ..config import AgentConfig
from ..context import AgentContext
from .locks import release_selection_lock

logger = logging.getLogger(__name__)

_langsmith_project = AgentConfig.LANGSMITH_PROJECT

TRANSPORT_STATUSES = ("pending", "picked_up", "in_transit", "delivered", "cancelled")


class TransportPlan(BaseModel):
    transport_id: str
    method: str
    distance_km: float
    base_minutes: float
    traffic_multiplier: float
    eta_minutes: int
    pickup_time: datetime
    estimated_delivery: datetime
    cold_chain_compliant: bool
    map_url: str
    source: str


class DonorEta(BaseModel):
    donor_id: str
    distance_km: float
    eta_options: Dict[str, int]
    recommended_mode: str
    recommended_eta: int


# ============================================
# Pure rules
# ============================================

def traffic_multiplier(hour: int) -> float:
    """Rush hour 1.5, midday 1.0, night 0.8"""
    if 7 <= hour < 9 or 17 <= hour < 19:
        return 1.5
    if 10 <= hour < 16:
        return 1.0
    if hour >= 19 or hour < 7:
        return 0.8
    return 1.0


def base_travel_minutes(distance_km: float) -> float:
    return distance_km / LOGISTICS_CONFIG["avg_speed_kmh"] * 60


def select_transport_method(distance_km: float, urgency: str) -> str:
    urgency = (urgency or "").lower()
    if distance_km < LOGISTICS_CONFIG["ambulance_max_km"] and urgency == "critical":
        return "ambulance"
    if distance_km < LOGISTICS_CONFIG["courier_max_km"] and urgency in ("high", "critical"):
        return "courier"
    return "scheduled"


def transport_eta_minutes(base_minutes: float, multiplier: float, method: str) -> int:
    adjusted = base_minutes * multiplier * LOGISTICS_CONFIG["method_factor"][method]
    if method == "scheduled":
        adjusted += LOGISTICS_CONFIG["scheduled_batch_delay_minutes"]
    return math.ceil(adjusted)


def is_cold_chain_compliant(eta_minutes: int) -> bool:
    return eta_minutes <= LOGISTICS_CONFIG["cold_chain_max_minutes"]


def donor_eta_options(distance_km: float, hour: int) -> Dict[str, int]:
    """Travel plus the fixed preparation and check-in buffer, per mode"""
    multiplier = traffic_multiplier(hour)
    options = {}
    for mode, speed in LOGISTICS_CONFIG["donor_speeds_kmh"].items():
        minutes = distance_km / speed * 60
        if mode in LOGISTICS_CONFIG["traffic_modes"]:
            minutes *= multiplier
        options[mode] = math.ceil(minutes + LOGISTICS_CONFIG["donor_prep_minutes"])
    return options


def recommended_mode(distance_km: float) -> str:
    if distance_km <= 1.5:
        return "walking"
    if distance_km <= 5:
        return "bicycle"
    if distance_km <= 10:
        return "public_transport"
    return "car"


def map_url(from_lat: float, from_lng: float, to_lat: float, to_lng: float) -> str:
    return f"https://www.google.com/maps/dir/{from_lat},{from_lng}/{to_lat},{to_lng}"


# ============================================
# Agent entrypoints
# ============================================

@traceable(name="logistics_agent", project_name=_langsmith_project)
def plan_transport(ctx: AgentContext, transport_id: str) -> TransportPlan:
    """
    Choose method and ETA for a transport request and check the cold chain.

    Raises ColdChainViolationError when the transit time exceeds 6 hours; the
    transport stays pending and is flagged for manual coordination.
    """
    logger.info(f"[Logistics Agent] Planning transport {transport_id}")

    transport = ctx.repos.transports.get(transport_id)
    if transport is None:
        raise NotFoundError("TransportRequest", transport_id)
    request = ctx.repos.requests.get(transport.request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", transport.request_id)

    source = ctx.repos.hospitals.get(transport.from_hospital_id)
    destination = ctx.repos.hospitals.get(transport.to_hospital_id)
    if source is None or destination is None:
        raise NotFoundError("Hospital", transport.from_hospital_id if source is None else transport.to_hospital_id)

    now = ctx.now()
    local_hour = ctx.local_now().hour
    distance = haversine_km(source.latitude, source.longitude, destination.latitude, destination.longitude)
    base_minutes = base_travel_minutes(distance)
    multiplier = traffic_multiplier(local_hour)
    method = select_transport_method(distance, request.urgency)
    eta = transport_eta_minutes(base_minutes, multiplier, method)

    outcome = reason_about_transport(ctx.reasoning, {
        "distance_km": distance,
        "blood_type": transport.blood_type,
        "units": transport.units,
        "urgency": request.urgency,
        "hour": local_hour,
        "traffic_multiplier": multiplier,
        "algorithmic_method": method,
        "algorithmic_eta_minutes": eta,
    })
    if outcome.ok:
        advice = outcome.value
        method = advice.method
        # The advised ETA may be optimistic; the cold chain is judged on the slower estimate
        eta = max(advice.eta_minutes, transport_eta_minutes(base_minutes, multiplier, method))
        reasoning, confidence, plan_source = advice.reasoning, advice.confidence, "reasoning"
    else:
        logger.warning(f"[Logistics Agent] Transport reasoning failed, using fixed rules: {outcome.error.message}")
        reasoning = (
            f"Selected {method} transport for {distance:.1f}km journey. "
            f"Base time: {base_minutes:.0f}min, traffic x{multiplier}, ETA {eta}min."
        )
        confidence, plan_source = 0.9, "fallback"

    compliant = is_cold_chain_compliant(eta)
    if not compliant:
        limit = LOGISTICS_CONFIG["cold_chain_max_minutes"]
        ctx.record_decision(
            AgentType.LOGISTICS,
            "cold_chain_violation",
            AuditNote(
                summary=f"Transport time {eta / 60:.1f}h exceeds {limit // 60}-hour cold chain limit",
                details={"transport_id": transport_id, "method": method, "eta_minutes": eta},
                reasoning="Plan rejected. Manual coordination recommended: closer source or faster method.",
                confidence=1.0,
            ),
            request_id=request.id,
        )
        ctx.repos.transports.update(transport_id, escalated=True, transport_method=method)
        workflow = ctx.repos.workflows.get(request.id)
        if workflow is not None:
            ctx.repos.workflows.update(
                request.id,
                current_step="transport_escalated",
                metadata={**workflow.metadata, "escalation": "cold_chain_violation"},
            )
        logger.error(f"[Logistics Agent] Cold chain violation for transport {transport_id}: {eta} minutes")
        raise ColdChainViolationError(transport_id, eta, limit)

    pickup = now + timedelta(minutes=LOGISTICS_CONFIG["pickup_delay_minutes"])
    delivery = pickup + timedelta(minutes=eta)
    route = map_url(source.latitude, source.longitude, destination.latitude, destination.longitude)

    ctx.repos.transports.update(
        transport_id,
        transport_method=method,
        distance_km=distance,
        pickup_time=pickup,
        eta=delivery,
        escalated=False,
    )

    ctx.events.publish(
        EventType.LOGISTICS_PLAN,
        {
            "transport_id": transport_id,
            "method": method,
            "distance_km": distance,
            "eta_minutes": eta,
            "traffic_multiplier": multiplier,
            "pickup_time": pickup.isoformat(),
            "estimated_delivery": delivery.isoformat(),
            "cold_chain_compliant": True,
            "route_details": {
                "from": {"name": source.name, "lat": source.latitude, "lng": source.longitude, "address": source.address},
                "to": {"name": destination.name, "lat": destination.latitude, "lng": destination.longitude, "address": destination.address},
                "map_url": route,
            },
        },
        producing_agent=AgentType.LOGISTICS.value,
        request_id=request.id,
    )

    ctx.record_decision(
        AgentType.LOGISTICS,
        "transport_planning",
        TransportDecision(
            transport_id=transport_id,
            method=method,
            distance_km=distance,
            eta_minutes=eta,
            traffic_multiplier=multiplier,
            cold_chain_compliant=True,
            reasoning=reasoning,
            confidence=confidence,
            source=plan_source,
        ),
        request_id=request.id,
    )

    logger.info(f"[Logistics Agent] Transport plan created: {method}, {distance:.1f}km, ETA {eta}min")
    return TransportPlan(
        transport_id=transport_id,
        method=method,
        distance_km=distance,
        base_minutes=base_minutes,
        traffic_multiplier=multiplier,
        eta_minutes=eta,
        pickup_time=pickup,
        estimated_delivery=delivery,
        cold_chain_compliant=True,
        map_url=route,
        source=plan_source,
    )


@traceable(name="donor_eta", project_name=_langsmith_project)
def calculate_donor_eta(
    ctx: AgentContext, donor_id: str, hospital_id: str, request_id: Optional[str] = None
) -> DonorEta:
    """
    Donor travel time to the hospital for every mode.

    Once a donor has accepted with a stored expected arrival, the answer is the
    time remaining until that arrival, never a fresh estimate.
    """
    now = ctx.now()

    if request_id:
        accepted = ctx.repos.responses.find(request_id, donor_id, status="accepted")
        if accepted is not None and accepted.expected_arrival is not None:
            remaining = max(0, math.ceil((accepted.expected_arrival - now).total_seconds() / 60))
            logger.info(f"[Logistics Agent] Donor {donor_id} already accepted; {remaining}min remaining")
            return DonorEta(
                donor_id=donor_id,
                distance_km=accepted.distance_km or 0,
                eta_options={mode: remaining for mode in LOGISTICS_CONFIG["donor_speeds_kmh"]},
                recommended_mode="accepted",
                recommended_eta=remaining,
            )

    donor = ctx.repos.donors.get(donor_id)
    hospital = ctx.repos.hospitals.get(hospital_id)
    if donor is None or hospital is None:
        raise NotFoundError("Donor" if donor is None else "Hospital", donor_id if donor is None else hospital_id)
    if None in (donor.latitude, donor.longitude, hospital.latitude, hospital.longitude):
        raise ValidationError("Donor or hospital has no coordinates")

    distance = haversine_km(donor.latitude, donor.longitude, hospital.latitude, hospital.longitude)
    options = donor_eta_options(distance, ctx.local_now().hour)
    mode = recommended_mode(distance)

    ctx.record_decision(
        AgentType.LOGISTICS,
        "donor_eta_calculation",
        DonorEtaDecision(
            donor_id=donor_id,
            distance_km=distance,
            recommended_mode=mode,
            eta_minutes=options,
            reasoning=(
                f"Donor is {distance:.1f}km from {hospital.name}. Recommended {mode} "
                f"({options[mode]}min including preparation and check-in)."
            ),
            confidence=0.85,
        ),
        request_id=request_id,
    )

    logger.info(f"[Logistics Agent] Donor ETA calculated for {distance:.1f}km: {mode} {options[mode]}min")
    return DonorEta(
        donor_id=donor_id,
        distance_km=distance,
        eta_options=options,
        recommended_mode=mode,
        recommended_eta=options[mode],
    )


def update_transport_status(ctx: AgentContext, transport_id: str, status: str):
    """Advance a transport; delivery of inventory fulfills the request"""
    if status not in TRANSPORT_STATUSES:
        raise ValidationError(f"Invalid transport status: {status}", details={"allowed": list(TRANSPORT_STATUSES)})

    now = ctx.now()
    fields = {"status": status}
    if status == "picked_up":
        fields["pickup_time"] = now
    elif status == "delivered":
        fields["delivery_time"] = now

    transport = ctx.repos.transports.update(transport_id, **fields)

    ctx.events.publish(
        EventType.LOGISTICS_STATUS,
        {"transport_id": transport_id, "status": status, "timestamp": now.isoformat()},
        producing_agent=AgentType.LOGISTICS.value,
        request_id=transport.request_id,
    )

    if status == "delivered":
        workflow = ctx.repos.workflows.get(transport.request_id)
        if workflow is not None and workflow.status != "fulfilled":
            ctx.repos.workflows.update(
                transport.request_id,
                status="fulfilled",
                current_step="inventory_delivered",
                fulfilled_at=now,
            )
            ctx.repos.requests.update(
                transport.request_id, status="fulfilled", fulfilled_at=now, fulfillment_source="inventory"
            )
        release_selection_lock(transport.request_id)

    logger.info(f"[Logistics Agent] Transport {transport_id} status updated to: {status}")
    return transport
