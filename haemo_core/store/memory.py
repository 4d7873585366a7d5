"""
In-memory repositories

Thread-safe tables holding pydantic records. Reads hand out copies so callers
can't mutate stored rows behind the store's back.
"""

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..decisions import AgentDecision
from ..domain import (
    Donor,
    DonorCandidateResponse,
    Hospital,
    InventoryThreshold,
    InventoryUnit,
    ShortageRequest,
    TransportRequest,
    WorkflowState,
    utcnow,
)
from ..exceptions import AlreadyReservedError, NotFoundError
from .base import (
    DecisionStore,
    DonorResponseStore,
    DonorStore,
    EventStore,
    HospitalStore,
    InventoryStore,
    InventoryThresholdStore,
    Repositories,
    ShortageRequestStore,
    TransportStore,
    WorkflowStateStore,
)


class _Table:
    """Insertion-ordered dict of records guarded by one lock"""

    def __init__(self, entity: str):
        self.entity = entity
        self.rows: Dict[str, object] = {}
        self.lock = threading.RLock()

    def put(self, key: str, record):
        with self.lock:
            self.rows[key] = record.model_copy(deep=True)
        return record

    def get(self, key: str):
        with self.lock:
            record = self.rows.get(key)
            return record.model_copy(deep=True) if record is not None else None

    def update(self, key: str, **fields):
        with self.lock:
            record = self.rows.get(key)
            if record is None:
                raise NotFoundError(self.entity, key)
            updated = record.model_copy(update=fields, deep=True)
            self.rows[key] = updated
            return updated.model_copy(deep=True)

    def select(self, predicate=lambda r: True) -> list:
        with self.lock:
            return [r.model_copy(deep=True) for r in self.rows.values() if predicate(r)]


class MemoryShortageRequestStore(ShortageRequestStore):
    def __init__(self):
        self._table = _Table("ShortageRequest")

    def add(self, request: ShortageRequest) -> ShortageRequest:
        return self._table.put(request.id, request)

    def get(self, request_id: str) -> Optional[ShortageRequest]:
        return self._table.get(request_id)

    def update(self, request_id: str, **fields) -> ShortageRequest:
        return self._table.update(request_id, **fields)

    def find_recent(self, hospital_id, blood_type, statuses, since) -> List[ShortageRequest]:
        statuses = set(statuses)
        return self._table.select(
            lambda r: r.hospital_id == hospital_id
            and r.blood_type == blood_type
            and r.status in statuses
            and r.created_at >= since
        )


class MemoryWorkflowStateStore(WorkflowStateStore):
    def __init__(self):
        self._table = _Table("WorkflowState")

    def create(self, state: WorkflowState) -> WorkflowState:
        with self._table.lock:
            existing = self._table.get(state.request_id)
            if existing is not None:
                return existing
            return self._table.put(state.request_id, state)

    def get(self, request_id: str) -> Optional[WorkflowState]:
        return self._table.get(request_id)

    def update(self, request_id: str, **fields) -> WorkflowState:
        fields.setdefault("updated_at", utcnow())
        return self._table.update(request_id, **fields)

    def list_by_status(self, status: str) -> List[WorkflowState]:
        return self._table.select(lambda w: w.status == status)


class MemoryDonorResponseStore(DonorResponseStore):
    def __init__(self):
        self._table = _Table("DonorCandidateResponse")

    def add(self, response: DonorCandidateResponse) -> DonorCandidateResponse:
        return self._table.put(response.id, response)

    def get(self, response_id: str) -> Optional[DonorCandidateResponse]:
        return self._table.get(response_id)

    def find(self, request_id, donor_id, status=None) -> Optional[DonorCandidateResponse]:
        matches = self._table.select(
            lambda r: r.request_id == request_id
            and r.donor_id == donor_id
            and (status is None or r.status == status)
        )
        return matches[0] if matches else None

    def list_for_request(self, request_id, status=None) -> List[DonorCandidateResponse]:
        return self._table.select(
            lambda r: r.request_id == request_id and (status is None or r.status == status)
        )

    def list_for_donor(self, donor_id: str) -> List[DonorCandidateResponse]:
        return self._table.select(lambda r: r.donor_id == donor_id)

    def list_since(self, since: datetime) -> List[DonorCandidateResponse]:
        return self._table.select(lambda r: r.notified_at >= since)

    def update(self, response_id: str, **fields) -> DonorCandidateResponse:
        return self._table.update(response_id, **fields)


class MemoryInventoryStore(InventoryStore):
    def __init__(self):
        self._table = _Table("InventoryUnit")

    def add(self, unit: InventoryUnit) -> InventoryUnit:
        return self._table.put(unit.id, unit)

    def get(self, unit_id: str) -> Optional[InventoryUnit]:
        return self._table.get(unit_id)

    def list_available(self, blood_types, exclude_hospital_id, expires_after) -> List[InventoryUnit]:
        blood_types = set(blood_types)
        return self._table.select(
            lambda u: u.blood_type in blood_types
            and u.hospital_id != exclude_hospital_id
            and u.units > 0
            and not u.reserved
            and u.expiry_date > expires_after
        )

    def list_for_hospital(self, hospital_id: str, blood_type: str) -> List[InventoryUnit]:
        return self._table.select(lambda u: u.hospital_id == hospital_id and u.blood_type == blood_type)

    def reserve(self, unit_id: str, request_id: str, at: datetime) -> InventoryUnit:
        with self._table.lock:
            unit = self._table.rows.get(unit_id)
            if unit is None:
                raise NotFoundError("InventoryUnit", unit_id)
            if unit.reserved:
                raise AlreadyReservedError(unit_id)
            return self._table.update(unit_id, reserved=True, reserved_for=request_id, reserved_at=at)

    def release_for(self, request_id: str) -> List[InventoryUnit]:
        with self._table.lock:
            held = [u.id for u in self._table.rows.values() if u.reserved_for == request_id]
            return [
                self._table.update(unit_id, reserved=False, reserved_for=None, reserved_at=None)
                for unit_id in held
            ]


class MemoryInventoryThresholdStore(InventoryThresholdStore):
    def __init__(self):
        self._table = _Table("InventoryThreshold")

    def add(self, threshold: InventoryThreshold) -> InventoryThreshold:
        return self._table.put(f"{threshold.hospital_id}:{threshold.blood_type}", threshold)

    def get(self, hospital_id: str, blood_type: str) -> Optional[InventoryThreshold]:
        return self._table.get(f"{hospital_id}:{blood_type}")

    def list_for_hospital(self, hospital_id: str) -> List[InventoryThreshold]:
        return self._table.select(lambda t: t.hospital_id == hospital_id)


class MemoryTransportStore(TransportStore):
    def __init__(self):
        self._table = _Table("TransportRequest")

    def add(self, transport: TransportRequest) -> TransportRequest:
        return self._table.put(transport.id, transport)

    def get(self, transport_id: str) -> Optional[TransportRequest]:
        return self._table.get(transport_id)

    def update(self, transport_id: str, **fields) -> TransportRequest:
        return self._table.update(transport_id, **fields)

    def list_for_request(self, request_id: str) -> List[TransportRequest]:
        return self._table.select(lambda t: t.request_id == request_id)


class MemoryDonorStore(DonorStore):
    def __init__(self):
        self._table = _Table("Donor")

    def add(self, donor: Donor) -> Donor:
        return self._table.put(donor.id, donor)

    def get(self, donor_id: str) -> Optional[Donor]:
        return self._table.get(donor_id)

    def update(self, donor_id: str, **fields) -> Donor:
        return self._table.update(donor_id, **fields)

    def list_by_blood_types(self, blood_types: Iterable[str], status: str = "approved") -> List[Donor]:
        blood_types = set(blood_types)
        return self._table.select(lambda d: d.blood_group in blood_types and d.status == status)

    def list_all(self) -> List[Donor]:
        return self._table.select()


class MemoryHospitalStore(HospitalStore):
    def __init__(self):
        self._table = _Table("Hospital")

    def add(self, hospital: Hospital) -> Hospital:
        return self._table.put(hospital.id, hospital)

    def get(self, hospital_id: str) -> Optional[Hospital]:
        return self._table.get(hospital_id)

    def list_approved(self) -> List[Hospital]:
        return self._table.select(lambda h: h.status == "approved")


class MemoryEventStore(EventStore):
    def __init__(self):
        self._table = _Table("AgentEvent")

    def append(self, event) -> None:
        self._table.put(event.id, event)

    def query(self, event_type=None, request_id=None, processed=None, limit=None) -> list:
        events = self._table.select(
            lambda e: (event_type is None or e.type.value == event_type)
            and (request_id is None or e.request_id == request_id)
            and (processed is None or e.processed == processed)
        )
        return events[:limit] if limit else events

    def mark_processed(self, event_id: str) -> None:
        self._table.update(event_id, processed=True)


class MemoryDecisionStore(DecisionStore):
    def __init__(self):
        self._table = _Table("AgentDecision")

    def append(self, decision: AgentDecision) -> AgentDecision:
        return self._table.put(decision.id, decision)

    def get(self, decision_id: str) -> Optional[AgentDecision]:
        return self._table.get(decision_id)

    def query(self, request_id=None, agent_type=None, event_type=None, since=None, limit=None) -> List[AgentDecision]:
        decisions = self._table.select(
            lambda d: (request_id is None or d.request_id == request_id)
            and (agent_type is None or d.agent_type.value == agent_type)
            and (event_type is None or d.event_type == event_type)
            and (since is None or d.created_at >= since)
        )
        return decisions[:limit] if limit else decisions

    def record_outcome(self, decision_id: str, outcome: str, details: dict, at: datetime) -> AgentDecision:
        return self._table.update(decision_id, outcome=outcome, outcome_details=details, outcome_recorded_at=at)


def memory_repositories() -> Repositories:
    """Fresh, empty in-memory tables"""
    return Repositories(
        requests=MemoryShortageRequestStore(),
        workflows=MemoryWorkflowStateStore(),
        responses=MemoryDonorResponseStore(),
        inventory=MemoryInventoryStore(),
        thresholds=MemoryInventoryThresholdStore(),
        transports=MemoryTransportStore(),
        donors=MemoryDonorStore(),
        hospitals=MemoryHospitalStore(),
        events=MemoryEventStore(),
        decisions=MemoryDecisionStore(),
    )
