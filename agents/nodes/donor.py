"""Donor Matching Agent Node"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import List, Optional

from langsmith import traceable
from pydantic import BaseModel

from haemo_core.config import DONOR_MATCHING_CONFIG
from haemo_core.decisions import AgentType, AuditNote, DonorStrategyDecision
from haemo_core.domain import Donor, DonorCandidateResponse, Hospital, ShortageRequest
from haemo_core.event_log import EventType
from haemo_core.exceptions import NotFoundError
from haemo_core.models.compatibility import can_donate, compatible_donor_types
from haemo_core.models.eligibility import is_matchable
from haemo_core.models.geo import haversine_km
from haemo_core.models.scoring import DonorScores, ResponseHistory, score_donor
from haemo_core.utils.prompts import reason_about_donor_strategy

from ..config import AgentConfig
from ..context import AgentContext
from ..task_queue import AgentTask
from ..tools import notifier as messages
from ..tools.tokens import mint_token
from .outcomes import historical_patterns

logger = logging.getLogger(__name__)

_langsmith_project = AgentConfig.LANGSMITH_PROJECT


class RankedDonor(BaseModel):
    donor: Donor
    distance_km: float
    scores: DonorScores
    rank: int


class DonorMatchResult(BaseModel):
    request_id: str
    eligible_count: int = 0
    notified_count: int = 0
    failed_notifications: int = 0
    trigger_inventory: bool = False
    skipped: Optional[str] = None


def response_history(ctx: AgentContext, donor_id: str) -> ResponseHistory:
    """Past alerts for one donor; unanswered alerts count against the acceptance rate"""
    past = ctx.repos.responses.list_for_donor(donor_id)
    if not past:
        return ResponseHistory()

    answered = [r for r in past if r.response_time_ms is not None]
    avg_minutes = (
        sum(r.response_time_ms for r in answered) / len(answered) / 60_000
        if answered else ResponseHistory().avg_response_minutes
    )
    return ResponseHistory(
        total_alerts=len(past),
        accepted=sum(1 for r in past if r.status == "accepted"),
        avg_response_minutes=avg_minutes,
    )


def find_and_rank_donors(ctx: AgentContext, request: ShortageRequest, now: datetime) -> List[RankedDonor]:
    """Compatible, eligible donors within the search radius, best score first"""
    if request.latitude is None or request.longitude is None:
        logger.warning(f"[Donor Agent] Request {request.id} has no location; cannot search donors")
        return []

    donor_types = compatible_donor_types(request.blood_type)
    logger.info(
        f"[Donor Agent] Searching {request.blood_type} compatible donors ({', '.join(donor_types)}) "
        f"within {request.search_radius_km}km"
    )

    candidates = []
    for donor in ctx.repos.donors.list_by_blood_types(donor_types, status="approved"):
        if not can_donate(donor.blood_group, request.blood_type):
            continue
        if not is_matchable(donor, now):
            continue
        if donor.latitude is None or donor.longitude is None:
            continue

        distance = haversine_km(request.latitude, request.longitude, donor.latitude, donor.longitude)
        if distance > request.search_radius_km:
            continue

        scores = score_donor(
            donor,
            distance,
            request.search_radius_km,
            request.urgency,
            now.astimezone(ctx.local_timezone),
            history=response_history(ctx, donor.id),
        )
        candidates.append((donor, distance, scores))

    # Stable sort keeps repository order for equal scores
    candidates.sort(key=lambda c: c[2].final, reverse=True)

    ranked = [
        RankedDonor(donor=donor, distance_km=distance, scores=scores, rank=i + 1)
        for i, (donor, distance, scores) in enumerate(candidates)
    ]
    logger.info(f"[Donor Agent] {len(ranked)} donors passed eligibility checks")
    return ranked


def default_notify_count(units_needed: int, eligible: int) -> int:
    cfg = DONOR_MATCHING_CONFIG
    target = max(cfg["min_notify"], cfg["notify_per_unit"] * units_needed)
    return min(target, min(cfg["max_notify"], eligible))


def should_trigger_inventory(urgency: str, eligible: int) -> bool:
    limit = DONOR_MATCHING_CONFIG["inventory_trigger"].get(urgency)
    return limit is not None and eligible <= limit


def _notify_candidate(
    ctx: AgentContext, request: ShortageRequest, hospital: Hospital, candidate: RankedDonor
) -> bool:
    """Token, event, message and response row for one donor; failures stay local"""
    donor = candidate.donor
    try:
        notified_at = ctx.now()
        token = mint_token(donor.id, request.id, notified_at)

        ctx.events.publish(
            EventType.DONOR_CANDIDATE,
            {
                "request_id": request.id,
                "donor_id": donor.id,
                "distance_km": candidate.distance_km,
                "eligibility_score": candidate.scores.final / 100,
                "rank": candidate.rank,
                "notification_sent": True,
                "timestamp": notified_at.isoformat(),
            },
            producing_agent=AgentType.DONOR.value,
            request_id=request.id,
        )

        ctx.notifier.send(messages.donor_alert(
            donor,
            request,
            hospital,
            accept_url=ctx.response_url(token, "accept"),
            decline_url=ctx.response_url(token, "decline"),
            distance_km=candidate.distance_km,
        ))

        ctx.repos.responses.add(DonorCandidateResponse(
            donor_id=donor.id,
            request_id=request.id,
            notified_at=notified_at,
            distance_km=candidate.distance_km,
            score=candidate.scores.final,
            token=token,
        ))
        return True
    except Exception as e:
        logger.error(f"[Donor Agent] Failed to notify donor {donor.id}: {e}")
        return False


@traceable(name="donor_agent", project_name=_langsmith_project)
def match_donors(ctx: AgentContext, request_id: str) -> DonorMatchResult:
    """
    Find, rank and notify donors for a shortage request.

    Decides whether inventory search should also run; donor and inventory
    paths are not mutually exclusive.
    """
    logger.info(f"[Donor Agent] Matching donors for request {request_id}")

    request = ctx.repos.requests.get(request_id)
    if request is None:
        raise NotFoundError("ShortageRequest", request_id)
    hospital = ctx.repos.hospitals.get(request.hospital_id)
    if hospital is None:
        raise NotFoundError("Hospital", request.hospital_id)

    if request.status in ("fulfilled", "closed"):
        return DonorMatchResult(request_id=request_id, skipped="request already closed")
    if ctx.repos.responses.list_for_request(request_id):
        # Redelivered message; donors were notified on an earlier attempt
        return DonorMatchResult(request_id=request_id, skipped="donors already notified")

    now = ctx.now()
    ranked = find_and_rank_donors(ctx, request, now)

    if not ranked:
        ctx.record_decision(
            AgentType.DONOR,
            "no_donors_found",
            AuditNote(
                summary=f"No eligible {request.blood_type} donors within {request.search_radius_km}km",
                details={"compatible_types": compatible_donor_types(request.blood_type)},
                reasoning="Zero eligible donors; inventory search triggered immediately.",
            ),
            request_id=request_id,
        )
        ctx.repos.workflows.update(
            request_id,
            current_step="no_donors_found",
            metadata={**ctx.repos.workflows.get(request_id).metadata, "inventory_triggered": True},
        )
        ctx.enqueue(AgentTask.INVENTORY_SEARCH, request_id=request_id)
        logger.info(f"[Donor Agent] No donors for {request_id}; inventory search triggered")
        return DonorMatchResult(request_id=request_id, trigger_inventory=True)

    eligible = len(ranked)
    outcome = reason_about_donor_strategy(ctx.reasoning, {
        "blood_type": request.blood_type,
        "units_needed": request.units_needed,
        "urgency": request.urgency,
        "eligible_count": eligible,
        "top_scores": [r.scores.final for r in ranked[:5]],
        "historical_patterns": historical_patterns(ctx, AgentType.DONOR),
    })

    notify_count = default_notify_count(request.units_needed, eligible)
    if outcome.ok:
        advice = outcome.value
        trigger_inventory = advice.should_trigger_inventory
        if advice.notify_count:
            notify_count = min(advice.notify_count, DONOR_MATCHING_CONFIG["max_notify"], eligible)
        reasoning, confidence, source = advice.reasoning, advice.confidence, "reasoning"
    else:
        logger.warning(f"[Donor Agent] Strategy reasoning failed, using thresholds: {outcome.error.message}")
        trigger_inventory = should_trigger_inventory(request.urgency, eligible)
        top = ranked[0]
        reasoning = (
            f"Notifying {notify_count} of {eligible} eligible candidates"
            f"{' AND searching inventory in parallel' if trigger_inventory else ''}. "
            f"Highest score: {top.scores.final:.1f} at {top.distance_km:.1f}km."
        )
        confidence, source = 0.95, "fallback"

    selected = ranked[:notify_count]
    with ThreadPoolExecutor(max_workers=DONOR_MATCHING_CONFIG["notification_workers"]) as pool:
        results = list(pool.map(lambda c: _notify_candidate(ctx, request, hospital, c), selected))

    notified_ids = [c.donor.id for c, ok in zip(selected, results) if ok]
    failed = len(selected) - len(notified_ids)

    ctx.record_decision(
        AgentType.DONOR,
        "donor_matching",
        DonorStrategyDecision(
            eligible_count=eligible,
            notify_count=notify_count,
            trigger_inventory=trigger_inventory,
            notified_donor_ids=notified_ids,
            reasoning=reasoning,
            confidence=confidence,
            source=source,
        ),
        request_id=request_id,
        raw_context={"ranked": [
            {"donor_id": r.donor.id, "rank": r.rank, "score": r.scores.final, "distance_km": r.distance_km}
            for r in ranked[:DONOR_MATCHING_CONFIG["max_notify"]]
        ]},
    )

    deadline = now + timedelta(minutes=ctx.response_window_minutes)
    workflow = ctx.repos.workflows.get(request_id)
    ctx.repos.workflows.update(
        request_id,
        status="donors_notified",
        current_step="donors_notified",
        metadata={
            **workflow.metadata,
            "donors_notified": len(notified_ids),
            "notified_at": now.isoformat(),
            "response_deadline": deadline.isoformat(),
            "inventory_triggered": trigger_inventory,
        },
    )
    ctx.repos.requests.update(request_id, status="notified")

    if trigger_inventory:
        ctx.enqueue(AgentTask.INVENTORY_SEARCH, request_id=request_id)

    logger.info(
        f"[Donor Agent] Notified {len(notified_ids)}/{len(selected)} donors for {request_id}"
        f"{' (inventory search triggered)' if trigger_inventory else ''}"
    )
    return DonorMatchResult(
        request_id=request_id,
        eligible_count=eligible,
        notified_count=len(notified_ids),
        failed_notifications=failed,
        trigger_inventory=trigger_inventory,
    )
