"""
Request/Response Models
Pydantic models for API validation
"""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Dict, Any


# ============================================
# REQUEST MODELS
# ============================================

class HospitalAlertRequest(BaseModel):
    """Stock report or explicit shortage request from a hospital"""
    hospital_id: str = Field(..., description="Hospital identifier")
    blood_type: str = Field(..., description="ABO/Rh blood type", examples=["O-"])
    current_units: int = Field(0, ge=0, description="Units currently on hand")
    daily_usage: float = Field(2, gt=0, description="Average units used per day")
    units_needed: Optional[int] = Field(None, ge=1, description="Explicit number of units requested")
    urgency: Optional[Literal["low", "medium", "high", "critical"]] = Field(
        None,
        description="Explicit urgency; derived from stock levels when omitted"
    )
    search_radius_km: Optional[float] = Field(None, gt=0, description="Donor search radius override")
    description: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None


class InventoryCheckRequest(BaseModel):
    """Request model for an auto-alert check on one hospital and blood type"""
    hospital_id: str = Field(..., description="Hospital identifier")
    blood_type: str = Field(..., description="ABO/Rh blood type", examples=["A+"])


class DonorRespondRequest(BaseModel):
    """Donor accept/decline submitted from the link in an alert"""
    token: str = Field(..., description="Response token from the alert link")
    status: str = Field(..., description="accept or decline", examples=["accept"])


class CoordinatorActionRequest(BaseModel):
    """Request model for coordinator actions"""
    action: Literal[
        "process_donor_response",
        "select_optimal_match",
        "handle_timeout",
        "confirm_arrival",
        "mark_no_show",
        "check_deadlines",
    ]
    request_id: Optional[str] = None
    donor_id: Optional[str] = None
    status: Optional[Literal["accepted", "declined"]] = None
    response_time_ms: Optional[int] = Field(None, ge=0)


class InventorySearchRequest(BaseModel):
    request_id: str = Field(..., description="Shortage request identifier")


class LogisticsActionRequest(BaseModel):
    """Request model for logistics actions"""
    action: Literal["plan_transport", "calculate_donor_eta", "update_status"]
    transport_id: Optional[str] = None
    donor_id: Optional[str] = None
    hospital_id: Optional[str] = None
    request_id: Optional[str] = None
    status: Optional[str] = None


class VerificationRequest(BaseModel):
    """Document check result for a donor, triggering eligibility screening when it passed"""
    donor_id: str = Field(..., description="Donor identifier")
    all_passed: bool = Field(..., description="Whether every uploaded document matched the registration")
    has_technical_error: bool = Field(False, description="Document check failed for a technical reason")
    mismatches: List[Dict[str, Any]] = Field(default_factory=list)


class CloseAlertRequest(BaseModel):
    fulfillment_source: Literal["donor", "inventory", "other"] = "other"
    notes: Optional[str] = None


# ============================================
# RESPONSE MODELS
# ============================================

class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., examples=["healthy"])
    timestamp: str = Field(..., examples=["2025-11-04T10:00:00"])
    version: str = Field(..., examples=["1.0.0"])
    storage_backend: str = Field(..., examples=["memory"])
    pending_tasks: int = Field(0, description="Agent tasks waiting in the queue")


class AgentResponse(BaseModel):
    """Result of an agent trigger"""
    success: bool = True
    result: Dict[str, Any]


class DonorRespondResponse(BaseModel):
    success: bool = True
    message: str
    status: str
    eta_minutes: Optional[int] = None


class AgentLogsResponse(BaseModel):
    """Full audit trail for one shortage request"""
    request_id: str
    request: Optional[Dict[str, Any]] = None
    workflow: Optional[Dict[str, Any]] = None
    events: List[Dict[str, Any]]
    decisions: List[Dict[str, Any]]


class DecisionListResponse(BaseModel):
    decisions: List[Dict[str, Any]]
    count: int


class ErrorResponse(BaseModel):
    """Error response"""
    success: bool = False
    error: str
    error_code: str
    details: Optional[Dict[str, Any]] = None
