"""
Decision-point prompts

One function per decision point. Each builds a prompt, calls the reasoning
client once and maps the JSON reply onto a typed advice model. A reply that
does not fit the model (missing field, unknown enum value, index out of range)
is returned as a failed outcome, exactly like a network error.
"""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from ..exceptions import ReasoningError
from .reasoning import ReasoningClient, ReasoningOutcome

COORDINATOR_SYSTEM_PROMPT = (
    "You are an intelligent blood donation coordinator agent. Analyze scenarios carefully, "
    "consider all factors, and provide clear, reasoned decisions with explanations. "
    "Always respond with a single JSON object."
)

ELIGIBILITY_SYSTEM_PROMPT = (
    "You are a medical eligibility reviewer for blood donation. Medical safety is paramount. "
    "Never override hard medical requirements. Always respond with a single JSON object."
)


# ============================================
# Advice models (what a valid reply looks like)
# ============================================

class UrgencyAdvice(BaseModel):
    urgency: Literal["low", "medium", "high", "critical"]
    priority_score: int = Field(..., ge=0, le=100)
    reasoning: str = ""
    recommended_action: str = ""
    confidence: float = Field(0.85, ge=0, le=1)


class DonorStrategyAdvice(BaseModel):
    should_trigger_inventory: bool
    notify_count: Optional[int] = Field(None, ge=1)
    reasoning: str = ""
    expected_response_rate: Optional[float] = Field(None, ge=0, le=1)
    confidence: float = Field(0.8, ge=0, le=1)


class SelectionAdvice(BaseModel):
    selected_index: int = Field(..., ge=0)
    reasoning: str = ""
    confidence: float = Field(0.8, ge=0, le=1)
    alternative_considerations: str = ""


class TransportAdvice(BaseModel):
    method: Literal["ambulance", "courier", "scheduled"]
    eta_minutes: int = Field(..., ge=1)
    cold_chain_compliant: bool = True
    reasoning: str = ""
    confidence: float = Field(0.8, ge=0, le=1)


class EligibilityAdvice(BaseModel):
    final_decision: Literal["approved", "rejected", "needs_review"]
    reasoning: str = ""
    edge_cases: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: float = Field(0.8, ge=0, le=1)


def _parse(outcome: ReasoningOutcome, model, candidate_count: Optional[int] = None) -> ReasoningOutcome:
    if not outcome.ok:
        return outcome
    try:
        advice = model.model_validate(outcome.value)
    except PydanticValidationError as e:
        return ReasoningOutcome.failed(
            ReasoningError(f"Reply does not match {model.__name__}", details={"errors": e.errors()})
        )
    if candidate_count is not None and advice.selected_index >= candidate_count:
        return ReasoningOutcome.failed(
            ReasoningError(
                f"Selected index {advice.selected_index} out of range for {candidate_count} candidates"
            )
        )
    return ReasoningOutcome.succeeded(advice, model=outcome.model, raw=outcome.raw)


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


# ============================================
# Decision points
# ============================================

def reason_about_urgency(client: ReasoningClient, context: Dict[str, Any]) -> ReasoningOutcome:
    prompt = f"""Assess the urgency of this blood shortage:

SHORTAGE:
- Blood Type: {context['blood_type']}
- Current Units: {context['current_units']}
- Daily Usage: {context['daily_usage']}
- Days Remaining: {context['days_remaining']:.1f}
- Rarity Score: {context['rarity']}/10
- Algorithmic Urgency: {context['algorithmic_urgency']}
- Algorithmic Priority: {context['algorithmic_priority']}/100

HOSPITAL CONTEXT:
{_dump(context.get('hospital', {}))}

Respond in JSON:
{{
  "urgency": "critical|high|medium|low",
  "reasoning": "Detailed explanation of urgency assessment considering all factors",
  "priority_score": 95,
  "recommended_action": "Specific action to take",
  "confidence": 0.9
}}"""
    return _parse(client.reason(prompt, COORDINATOR_SYSTEM_PROMPT), UrgencyAdvice)


def reason_about_donor_strategy(client: ReasoningClient, context: Dict[str, Any]) -> ReasoningOutcome:
    prompt = f"""Decide the donor outreach strategy for this shortage:

REQUEST:
- Blood Type: {context['blood_type']}
- Units Needed: {context['units_needed']}
- Urgency: {context['urgency']}
- Eligible Donors Within Radius: {context['eligible_count']}
- Top Donor Scores: {context['top_scores']}

HISTORICAL PATTERNS:
{_dump(context.get('historical_patterns', {}))}

Donor and inventory search are not mutually exclusive. Decide whether inventory
search should run in parallel and how many donors to notify.

Respond in JSON:
{{
  "should_trigger_inventory": true,
  "notify_count": 10,
  "reasoning": "Detailed explanation of strategy decision",
  "expected_response_rate": 0.3,
  "confidence": 0.85
}}"""
    return _parse(client.reason(prompt, COORDINATOR_SYSTEM_PROMPT), DonorStrategyAdvice)


def reason_about_donor_selection(
    client: ReasoningClient, candidates: List[Dict[str, Any]], context: Dict[str, Any]
) -> ReasoningOutcome:
    lines = "\n".join(
        f"{i}. {c['donor_name']}\n"
        f"   - Distance: {c['distance_km']}km\n"
        f"   - ETA: {c['eta_minutes']} minutes\n"
        f"   - Match Score: {c['match_score']}/100\n"
        f"   - Reliability: {c['reliability_rate'] * 100:.1f}%\n"
        f"   - Health Status: {c['health_score']}/100"
        for i, c in enumerate(candidates)
    )
    prompt = f"""Select the optimal donor among those who accepted:

CANDIDATES (0-indexed):
{lines}

ALERT CONTEXT:
- Blood Type: {context['blood_type']}
- Urgency: {context['urgency']}
- Units Needed: {context['units_needed']}
- Time: {context['time_of_day']}
- Traffic: {context.get('traffic_conditions', 'unknown')}

HISTORICAL PATTERNS:
{_dump(context.get('historical_patterns', {}))}

Consider medical urgency, donor reliability, distance versus travel time and overall match quality.

Respond in JSON:
{{
  "selected_index": 0,
  "reasoning": "Step-by-step explanation of why this donor is optimal",
  "confidence": 0.95,
  "alternative_considerations": "What other options were considered and why they were rejected"
}}"""
    return _parse(client.reason(prompt, COORDINATOR_SYSTEM_PROMPT), SelectionAdvice, len(candidates))


def reason_about_inventory_selection(
    client: ReasoningClient, candidates: List[Dict[str, Any]], context: Dict[str, Any]
) -> ReasoningOutcome:
    lines = "\n".join(
        f"{i}. {c['hospital_name']}\n"
        f"   - Blood Type: {c['blood_type']}\n"
        f"   - Units Available: {c['units']}\n"
        f"   - Distance: {c['distance_km']}km\n"
        f"   - Days Until Expiry: {c['days_until_expiry']}\n"
        f"   - Score: {c['score']}/100"
        for i, c in enumerate(candidates)
    )
    prompt = f"""Select the best inventory source for this shortage:

SOURCES (0-indexed):
{lines}

REQUEST:
- Blood Type: {context['blood_type']}
- Units Needed: {context['units_needed']}
- Urgency: {context['urgency']}

Prefer units closer to expiry when transport is feasible (FIFO), and keep facilities above their own safety stock.

Respond in JSON:
{{
  "selected_index": 0,
  "reasoning": "Detailed explanation of why this source is optimal",
  "confidence": 0.9
}}"""
    return _parse(client.reason(prompt, COORDINATOR_SYSTEM_PROMPT), SelectionAdvice, len(candidates))


def reason_about_transport(client: ReasoningClient, context: Dict[str, Any]) -> ReasoningOutcome:
    prompt = f"""Plan transport for reserved blood units:

TRANSPORT:
- Distance: {context['distance_km']}km
- Blood Type: {context['blood_type']}
- Units: {context['units']}
- Urgency: {context['urgency']}
- Hour of Day: {context['hour']}
- Traffic Multiplier: {context['traffic_multiplier']}
- Algorithmic Method: {context['algorithmic_method']}
- Algorithmic ETA: {context['algorithmic_eta_minutes']} minutes

Blood must stay within cold chain: total transit under 6 hours.

Respond in JSON:
{{
  "method": "ambulance|courier|scheduled",
  "reasoning": "Detailed explanation of transport method selection",
  "eta_minutes": 45,
  "cold_chain_compliant": true,
  "confidence": 0.85
}}"""
    return _parse(client.reason(prompt, COORDINATOR_SYSTEM_PROMPT), TransportAdvice)


def reason_about_eligibility(client: ReasoningClient, check, donor, age: int) -> ReasoningOutcome:
    failed = "\n".join(
        f"  - {c.criterion}: {c.value} (Required: {c.required})" for c in check.failed_criteria
    )
    all_criteria = "\n".join(
        f"  - {c.criterion}: {c.value} (Required: {c.required}) - {'PASS' if c.passed else 'FAIL'}"
        for c in check.all_criteria
    )
    prompt = f"""Analyze donor eligibility decision:

DONOR PROFILE:
- Age: {age} years
- Weight: {donor.weight} kg
- BMI: {donor.bmi}
- Hemoglobin: {donor.hemoglobin} g/dL
- Gender: {donor.gender}
- Last Donation: {donor.last_donation.isoformat() if donor.last_donation else 'Never'}

ELIGIBILITY CHECK RESULTS:
- Overall Status: {'PASSED' if check.passed else 'FAILED'}
- Failed Criteria: {len(check.failed_criteria)}
{failed}

ALL CRITERIA:
{all_criteria}

IMPORTANT RULES:
- Age < 18 or > 65: ALWAYS reject
- Disease tests positive: ALWAYS reject
- Weight < 50kg: ALWAYS reject
- Hemoglobin < 12.5: ALWAYS reject
- BMI < 18.5: Usually reject, but flag for review if very close
- Donation interval: Usually reject, but consider if very close

Respond in JSON:
{{
  "final_decision": "approved|rejected|needs_review",
  "reasoning": "Detailed explanation of eligibility decision",
  "edge_cases": ["Borderline cases that might need human review"],
  "recommendations": ["Actionable recommendations for the donor"],
  "confidence": 0.95
}}"""
    return _parse(client.reason(prompt, ELIGIBILITY_SYSTEM_PROMPT, temperature=0.2), EligibilityAdvice)
