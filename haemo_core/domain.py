"""
Domain entities shared by the agents, the stores and the API.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

Urgency = Literal["low", "medium", "high", "critical"]
RequestStatus = Literal["pending", "notified", "matching", "matched", "fulfilled", "closed"]
WorkflowStatus = Literal[
    "pending", "donors_notified", "matching", "fulfillment_in_progress", "fulfilled",
]
ResponseStatus = Literal["notified", "accepted", "declined"]
TransportMethod = Literal["ambulance", "courier", "scheduled"]
TransportStatus = Literal["pending", "picked_up", "in_transit", "delivered", "cancelled"]
DonorStatus = Literal["pending", "approved", "rejected", "suspended"]

# Live requests still being worked on
OPEN_REQUEST_STATUSES = ("pending", "notified", "matching", "matched")


def new_id() -> str:
    """Hex uuid; never contains a hyphen so it can sit inside a response token."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShortageRequest(BaseModel):
    """One hospital's need for N units of a blood type"""
    id: str = Field(default_factory=new_id)
    hospital_id: str
    blood_type: str
    units_needed: int = Field(..., ge=1)
    urgency: Urgency
    search_radius_km: float = Field(..., gt=0)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    priority_score: int = Field(0, ge=0, le=100)
    status: RequestStatus = "pending"
    auto_detected: bool = False
    description: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    fulfilled_at: Optional[datetime] = None
    fulfillment_source: Optional[str] = None


class WorkflowState(BaseModel):
    """Per-request progress record; exactly one per ShortageRequest"""
    request_id: str
    status: WorkflowStatus = "pending"
    current_step: str = "created"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    fulfillment_plan: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    fulfilled_at: Optional[datetime] = None


class DonorCandidateResponse(BaseModel):
    id: str = Field(default_factory=new_id)
    donor_id: str
    request_id: str
    notified_at: datetime
    responded_at: Optional[datetime] = None
    status: ResponseStatus = "notified"
    alert_status: Literal["pending", "confirmed", "declined"] = "pending"
    response_time_ms: Optional[int] = None
    distance_km: Optional[float] = None
    score: Optional[float] = None
    confirmed: bool = False
    no_show: bool = False
    expected_arrival: Optional[datetime] = None
    token: Optional[str] = None


class InventoryUnit(BaseModel):
    id: str = Field(default_factory=new_id)
    hospital_id: str
    blood_type: str
    units: int = Field(..., ge=0)
    expiry_date: datetime
    reserved: bool = False
    reserved_for: Optional[str] = None
    reserved_at: Optional[datetime] = None


class InventoryThreshold(BaseModel):
    hospital_id: str
    blood_type: str
    minimum_required: int = Field(..., ge=0)


class TransportRequest(BaseModel):
    id: str = Field(default_factory=new_id)
    request_id: str
    inventory_id: Optional[str] = None
    from_hospital_id: str
    to_hospital_id: str
    blood_type: str
    units: int
    distance_km: Optional[float] = None
    transport_method: TransportMethod = "courier"
    status: TransportStatus = "pending"
    pickup_time: Optional[datetime] = None
    eta: Optional[datetime] = None
    delivery_time: Optional[datetime] = None
    escalated: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Donor(BaseModel):
    """Registration record; the core only reads the eligibility fields"""
    id: str = Field(default_factory=new_id)  # hyphen-free, it leads every response token
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    blood_group: str
    gender: Literal["male", "female"]
    date_of_birth: date
    weight: float
    bmi: Optional[float] = None
    hemoglobin: Optional[float] = None
    hiv_test: str = "negative"
    hepatitis_b_test: str = "negative"
    hepatitis_c_test: str = "negative"
    syphilis_test: str = "negative"
    malaria_test: str = "negative"
    recent_vaccinations: bool = False
    medications: Optional[str] = None
    never_donated: bool = True
    last_donation: Optional[date] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: DonorStatus = "pending"
    verification_attempts: int = 0
    suspended_until: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Hospital(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    address: str = ""
    phone: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: Literal["pending", "approved", "rejected"] = "approved"
    network_participation: bool = True
    cold_storage: bool = True
    temperature_standards: bool = True
