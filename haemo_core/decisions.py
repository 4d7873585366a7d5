"""
Typed decision records

Each decision point produces its own variant. Control flow reads the typed
fields; raw_context on AgentDecision is kept for the audit trail only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from .domain import new_id, utcnow

DecisionSource = Literal["reasoning", "fallback", "rule"]


class AgentType(str, Enum):
    HOSPITAL = "hospital"
    DONOR = "donor"
    COORDINATOR = "coordinator"
    INVENTORY = "inventory"
    LOGISTICS = "logistics"
    VERIFICATION = "verification"


class _Decision(BaseModel):
    reasoning: str = ""
    confidence: float = Field(1.0, ge=0, le=1)
    source: DecisionSource = "rule"


class UrgencyDecision(_Decision):
    kind: Literal["urgency"] = "urgency"
    urgency: Literal["low", "medium", "high", "critical"]
    priority_score: int
    search_radius_km: float
    units_needed: int


class DonorStrategyDecision(_Decision):
    kind: Literal["donor_strategy"] = "donor_strategy"
    eligible_count: int
    notify_count: int
    trigger_inventory: bool
    notified_donor_ids: List[str] = Field(default_factory=list)


class DonorSelectionDecision(_Decision):
    kind: Literal["donor_selection"] = "donor_selection"
    selected_donor_id: str
    selected_response_id: Optional[str] = None
    match_score: float
    eta_minutes: int
    distance_km: float
    rejected_donor_ids: List[str] = Field(default_factory=list)


class InventorySelectionDecision(_Decision):
    kind: Literal["inventory_selection"] = "inventory_selection"
    inventory_id: str
    source_hospital_id: str
    units_reserved: int
    score: float
    distance_km: float
    transport_id: Optional[str] = None


class TransportDecision(_Decision):
    kind: Literal["transport"] = "transport"
    transport_id: str
    method: Literal["ambulance", "courier", "scheduled"]
    distance_km: float
    eta_minutes: int
    traffic_multiplier: float
    cold_chain_compliant: bool


class EligibilityDecision(_Decision):
    kind: Literal["eligibility"] = "eligibility"
    outcome: Literal["approved", "rejected", "needs_review"]
    failed_criteria: List[str] = Field(default_factory=list)
    override_applied: bool = False
    guidance: str = ""


class DonorEtaDecision(_Decision):
    kind: Literal["donor_eta"] = "donor_eta"
    donor_id: str
    distance_km: float
    recommended_mode: str
    eta_minutes: Dict[str, int] = Field(default_factory=dict)


class AuditNote(_Decision):
    """Non-reasoning milestones: responses received, timeouts, completions"""
    kind: Literal["note"] = "note"
    summary: str
    details: Dict[str, Any] = Field(default_factory=dict)


Decision = Annotated[
    Union[
        UrgencyDecision,
        DonorStrategyDecision,
        DonorSelectionDecision,
        InventorySelectionDecision,
        TransportDecision,
        EligibilityDecision,
        DonorEtaDecision,
        AuditNote,
    ],
    Field(discriminator="kind"),
]


class AgentDecision(BaseModel):
    """Audit row; only the outcome fields are ever written after creation"""
    id: str = Field(default_factory=new_id)
    agent_type: AgentType
    event_type: str
    request_id: Optional[str] = None
    decision: Decision
    confidence: float = 1.0
    raw_context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    outcome: Optional[str] = None
    outcome_details: Dict[str, Any] = Field(default_factory=dict)
    outcome_recorded_at: Optional[datetime] = None
