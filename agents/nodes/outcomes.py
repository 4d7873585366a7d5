"""Outcome tracking: feeds past performance back into reasoning prompts"""

import logging
from datetime import timedelta
from typing import Dict, List

from haemo_core.config import OUTCOME_CONFIG
from haemo_core.decisions import AgentDecision, AgentType

from ..context import AgentContext

logger = logging.getLogger(__name__)


def track_decision_outcome(ctx: AgentContext, decision_id: str, outcome: str, details: Dict) -> AgentDecision:
    """Append the observed outcome to a decision; the decision itself never changes"""
    record = ctx.repos.decisions.record_outcome(decision_id, outcome, details, ctx.now())
    logger.info(f"[Outcome Tracking] Tracked outcome for decision {decision_id}: {outcome}")
    return record


def historical_patterns(ctx: AgentContext, agent_type: AgentType) -> Dict:
    """Success rate, fulfillment time and donor responsiveness over the last 30 days"""
    since = ctx.now() - timedelta(days=OUTCOME_CONFIG["history_days"])
    decisions = ctx.repos.decisions.query(agent_type=agent_type.value, since=since)[-100:]

    successes = sum(1 for d in decisions if d.outcome == "success")
    times = [
        d.outcome_details["fulfillment_minutes"]
        for d in decisions
        if "fulfillment_minutes" in d.outcome_details
    ]

    patterns = {
        "total_decisions": len(decisions),
        "success_rate": successes / len(decisions) if decisions else 0,
        "avg_fulfillment_minutes": sum(times) / len(times) if times else 0,
    }

    if agent_type in (AgentType.COORDINATOR, AgentType.DONOR):
        responses = ctx.repos.responses.list_since(since)
        patterns["donor_response_rate"] = (
            sum(1 for r in responses if r.status == "accepted") / len(responses)
            if responses else OUTCOME_CONFIG["default_response_rate"]
        )
        patterns["avg_response_minutes"] = (
            sum((r.response_time_ms or 600_000) for r in responses) / len(responses) / 60_000
            if responses else 10
        )

    return patterns


def learn_from_outcomes(ctx: AgentContext, agent_type: AgentType) -> Dict:
    patterns = historical_patterns(ctx, agent_type)
    insights: List[str] = []
    adjustments: Dict = {}

    if patterns["total_decisions"] and patterns["success_rate"] < 0.7:
        insights.append(
            f"Low success rate ({patterns['success_rate'] * 100:.1f}%). Consider more conservative donor selection."
        )
        adjustments["confidence_threshold"] = 0.85

    if patterns["avg_fulfillment_minutes"] > 60:
        insights.append(
            f"Average fulfillment time is high ({patterns['avg_fulfillment_minutes']:.0f}min). "
            f"Consider prioritizing closer donors."
        )
        adjustments["distance_weight"] = 0.4

    if patterns.get("donor_response_rate", 1) < 0.2:
        insights.append(
            f"Low donor response rate ({patterns['donor_response_rate'] * 100:.1f}%). "
            f"Consider notifying more donors."
        )
        adjustments["notification_count"] = 15

    return {"insights": insights, "recommended_adjustments": adjustments, "patterns": patterns}


def traffic_conditions(hour: int) -> str:
    if 7 <= hour <= 9:
        return "Rush hour morning - 50% slower"
    if 17 <= hour <= 19:
        return "Rush hour evening - 50% slower"
    if hour >= 22 or hour <= 6:
        return "Night time - light traffic"
    return "Normal traffic"
