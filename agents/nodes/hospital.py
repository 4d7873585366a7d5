"""Hospital Agent Node (shortage detection)"""

import logging
import math
from datetime import timedelta
from typing import Dict, Optional

from langsmith import traceable
from pydantic import BaseModel, Field

from haemo_core.config import (
    BLOOD_TYPE_PRIORITY_POINTS,
    BLOOD_TYPE_RARITY,
    DEFAULT_PRIORITY_POINTS,
    DEFAULT_RARITY,
    SHORTAGE_CONFIG,
)
from haemo_core.decisions import AgentType, UrgencyDecision
from haemo_core.domain import OPEN_REQUEST_STATUSES, Hospital, ShortageRequest, Urgency, WorkflowState
from haemo_core.event_log import EventType
from haemo_core.exceptions import NotFoundError, ValidationError
from haemo_core.models.compatibility import is_valid_blood_type
from haemo_core.utils.prompts import reason_about_urgency

from ..config import AgentConfig
from ..context import AgentContext
from ..task_queue import AgentTask

logger = logging.getLogger(__name__)

_langsmith_project = AgentConfig.LANGSMITH_PROJECT


class StockAlert(BaseModel):
    """A stock reading or an explicit request submitted by a hospital"""
    hospital_id: str
    blood_type: str
    current_units: int = Field(0, ge=0)
    daily_usage: float = Field(SHORTAGE_CONFIG["default_daily_usage"], gt=0)
    units_needed: Optional[int] = Field(None, ge=1)
    urgency: Optional[Urgency] = None
    search_radius_km: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None

    @property
    def is_explicit_request(self) -> bool:
        return self.urgency is not None or self.units_needed is not None


class ShortageAssessment(BaseModel):
    is_shortage: bool
    days_remaining: float
    urgency: Urgency
    priority_score: int
    units_needed: int
    search_radius_km: float
    rarity: int
    reasoning: str


class ShortageOutcome(BaseModel):
    detected: bool
    assessment: ShortageAssessment
    request: Optional[ShortageRequest] = None
    decision_id: Optional[str] = None


class AutoAlertResult(BaseModel):
    created: bool
    reason: str
    current_units: int = 0
    request: Optional[ShortageRequest] = None


# ============================================
# Pure detection rules
# ============================================

def urgency_for(blood_type: str, current_units: int, days_remaining: float) -> Urgency:
    rarity = BLOOD_TYPE_RARITY.get(blood_type, DEFAULT_RARITY)
    if days_remaining < 1 or current_units == 0:
        return "critical"
    if days_remaining < 2 or (rarity >= SHORTAGE_CONFIG["rare_type_threshold"] and days_remaining < 3):
        return "high"
    if days_remaining < 3:
        return "medium"
    return "low"


def priority_score(urgency: str, blood_type: str, days_remaining: float) -> int:
    """Urgency (40) + rarity (30) + time criticality (30), capped at 100"""
    score = SHORTAGE_CONFIG["urgency_points"].get(urgency, 10)
    score += BLOOD_TYPE_PRIORITY_POINTS.get(blood_type, DEFAULT_PRIORITY_POINTS)

    if days_remaining < 0.5:
        score += 30
    elif days_remaining < 1:
        score += 25
    elif days_remaining < 2:
        score += 20
    elif days_remaining < 3:
        score += 15
    else:
        score += 10

    return min(100, score)


def search_radius_for(urgency: str) -> float:
    return SHORTAGE_CONFIG["search_radius_km"].get(urgency, SHORTAGE_CONFIG["default_search_radius_km"])


def detect_shortage(
    blood_type: str,
    current_units: int,
    daily_usage: float = SHORTAGE_CONFIG["default_daily_usage"],
    threshold_days: float = SHORTAGE_CONFIG["threshold_days"],
) -> ShortageAssessment:
    days_remaining = current_units / daily_usage
    rarity = BLOOD_TYPE_RARITY.get(blood_type, DEFAULT_RARITY)
    urgency = urgency_for(blood_type, current_units, days_remaining)
    units_needed = max(1, math.ceil(daily_usage * SHORTAGE_CONFIG["target_days_of_stock"]) - current_units)

    if days_remaining >= threshold_days and current_units > 0:
        return ShortageAssessment(
            is_shortage=False,
            days_remaining=days_remaining,
            urgency="low",
            priority_score=0,
            units_needed=units_needed,
            search_radius_km=search_radius_for("low"),
            rarity=rarity,
            reasoning=f"Stock sufficient: {current_units} units, {days_remaining:.1f} days remaining",
        )

    return ShortageAssessment(
        is_shortage=True,
        days_remaining=days_remaining,
        urgency=urgency,
        priority_score=priority_score(urgency, blood_type, days_remaining),
        units_needed=units_needed,
        search_radius_km=search_radius_for(urgency),
        rarity=rarity,
        reasoning=(
            f"Stock low: {current_units} units remaining ({days_remaining:.1f} days). "
            f"Blood type {blood_type} rarity: {rarity}/10."
        ),
    )


# ============================================
# Agent entrypoints
# ============================================

def _approved_hospital(ctx: AgentContext, hospital_id: str) -> Hospital:
    hospital = ctx.repos.hospitals.get(hospital_id)
    if hospital is None:
        raise NotFoundError("Hospital", hospital_id)
    if hospital.status != "approved":
        raise ValidationError(f"Hospital {hospital.name} is not approved", details={"hospital_id": hospital_id})
    return hospital


@traceable(name="hospital_agent", project_name=_langsmith_project)
def process_stock_alert(ctx: AgentContext, alert: StockAlert, auto_detected: bool = False) -> ShortageOutcome:
    """
    Turn a stock alert into a normalized shortage request.

    Creates the request, its single workflow state, a shortage.request.v1
    event and an urgency decision, then hands off to donor matching.
    """
    logger.info(f"[Hospital Agent] Processing {alert.blood_type} alert for hospital {alert.hospital_id}")

    if not is_valid_blood_type(alert.blood_type):
        raise ValidationError(f"Unknown blood type: {alert.blood_type}")
    hospital = _approved_hospital(ctx, alert.hospital_id)

    assessment = detect_shortage(alert.blood_type, alert.current_units, alert.daily_usage)
    if not assessment.is_shortage and not alert.is_explicit_request:
        logger.info(f"[Hospital Agent] No shortage: {assessment.reasoning}")
        return ShortageOutcome(detected=False, assessment=assessment)

    outcome = reason_about_urgency(ctx.reasoning, {
        "blood_type": alert.blood_type,
        "current_units": alert.current_units,
        "daily_usage": alert.daily_usage,
        "days_remaining": assessment.days_remaining,
        "rarity": assessment.rarity,
        "algorithmic_urgency": alert.urgency or assessment.urgency,
        "algorithmic_priority": assessment.priority_score,
        "hospital": {"name": hospital.name, "description": alert.description},
    })

    if outcome.ok:
        advice = outcome.value
        urgency, priority = advice.urgency, advice.priority_score
        reasoning, confidence, source = advice.reasoning, advice.confidence, "reasoning"
    else:
        logger.warning(f"[Hospital Agent] Urgency reasoning failed, using algorithmic urgency: {outcome.error.message}")
        urgency = alert.urgency or assessment.urgency
        priority = priority_score(urgency, alert.blood_type, assessment.days_remaining)
        reasoning, confidence, source = assessment.reasoning, 1.0, "fallback"

    request = ShortageRequest(
        hospital_id=hospital.id,
        blood_type=alert.blood_type,
        units_needed=alert.units_needed or assessment.units_needed,
        urgency=urgency,
        search_radius_km=alert.search_radius_km or search_radius_for(urgency),
        latitude=hospital.latitude,
        longitude=hospital.longitude,
        priority_score=priority,
        auto_detected=auto_detected,
        description=alert.description,
        contact_name=alert.contact_name or hospital.contact_person,
        contact_phone=alert.contact_phone or hospital.phone,
        created_at=ctx.now(),
    )
    ctx.repos.requests.add(request)

    ctx.events.publish(
        EventType.SHORTAGE_REQUEST,
        {
            "id": request.id,
            "hospital_id": request.hospital_id,
            "blood_type": request.blood_type,
            "units_needed": request.units_needed,
            "urgency": request.urgency,
            "location": {"lat": request.latitude, "lng": request.longitude},
            "search_radius_km": request.search_radius_km,
            "priority_score": request.priority_score,
            "metadata": {
                "contact_person": request.contact_name,
                "contact_phone": request.contact_phone,
                "reason": request.description,
                "auto_detected": auto_detected,
            },
        },
        producing_agent=AgentType.HOSPITAL.value,
        request_id=request.id,
    )

    decision = ctx.record_decision(
        AgentType.HOSPITAL,
        "shortage_detection",
        UrgencyDecision(
            urgency=urgency,
            priority_score=priority,
            search_radius_km=request.search_radius_km,
            units_needed=request.units_needed,
            reasoning=reasoning,
            confidence=confidence,
            source=source,
        ),
        request_id=request.id,
        raw_context={"assessment": assessment.model_dump(), "alert": alert.model_dump()},
    )

    ctx.repos.workflows.create(WorkflowState(
        request_id=request.id,
        status="pending",
        current_step="shortage_detected",
        metadata={"urgency": urgency, "priority_score": priority, "auto_detected": auto_detected},
        created_at=ctx.now(),
        updated_at=ctx.now(),
    ))

    ctx.enqueue(AgentTask.MATCH_DONORS, request_id=request.id)

    logger.info(
        f"[Hospital Agent] Shortage request {request.id} created: {urgency} "
        f"(priority {priority}), {request.units_needed} units within {request.search_radius_km} km"
    )
    return ShortageOutcome(detected=True, assessment=assessment, request=request, decision_id=decision.id)


@traceable(name="inventory_auto_alert", project_name=_langsmith_project)
def check_inventory_and_auto_alert(ctx: AgentContext, hospital_id: str, blood_type: str) -> AutoAlertResult:
    """Raise a request on its own when stock drops below 40% of the configured minimum"""
    threshold = ctx.repos.thresholds.get(hospital_id, blood_type)
    if threshold is None:
        logger.info(f"[Hospital Agent] No threshold set for {blood_type} at {hospital_id}")
        return AutoAlertResult(created=False, reason="No threshold configured")

    units = ctx.repos.inventory.list_for_hospital(hospital_id, blood_type)
    current = sum(u.units for u in units if not u.reserved)
    critical = threshold.minimum_required * SHORTAGE_CONFIG["auto_alert_fraction"]

    if current >= critical:
        return AutoAlertResult(created=False, reason="Inventory above critical threshold", current_units=current)

    since = ctx.now() - timedelta(hours=SHORTAGE_CONFIG["dedupe_window_hours"])
    if ctx.repos.requests.find_recent(hospital_id, blood_type, OPEN_REQUEST_STATUSES, since):
        logger.info(f"[Hospital Agent] Recent {blood_type} alert already open for {hospital_id}, skipping")
        return AutoAlertResult(created=False, reason="Recent alert already exists", current_units=current)

    percent = current / threshold.minimum_required * 100
    if percent < 20:
        urgency = "critical"
    elif percent < 30:
        urgency = "high"
    else:
        urgency = "medium"

    outcome = process_stock_alert(
        ctx,
        StockAlert(
            hospital_id=hospital_id,
            blood_type=blood_type,
            current_units=current,
            units_needed=max(1, threshold.minimum_required - current),
            urgency=urgency,
            description=(
                f"Auto-detected critical shortage: {current} units remaining "
                f"(critical threshold: {critical:g})"
            ),
        ),
        auto_detected=True,
    )
    return AutoAlertResult(created=True, reason="Auto alert created", current_units=current, request=outcome.request)


@traceable(name="inventory_monitor", project_name=_langsmith_project)
def monitor_all_hospitals(ctx: AgentContext) -> Dict:
    """Polling entrypoint: check every approved hospital's thresholds"""
    checked, created, errors = 0, 0, 0
    for hospital in ctx.repos.hospitals.list_approved():
        for threshold in ctx.repos.thresholds.list_for_hospital(hospital.id):
            checked += 1
            try:
                result = check_inventory_and_auto_alert(ctx, hospital.id, threshold.blood_type)
            except Exception as e:
                errors += 1
                logger.error(f"[Hospital Agent] Auto-alert check failed for {hospital.id}/{threshold.blood_type}: {e}")
                continue
            if result.created:
                created += 1

    logger.info(f"[Hospital Agent] Monitor run: {checked} thresholds checked, {created} alerts created")
    return {"checked": checked, "alerts_created": created, "errors": errors}
