"""
Supabase repositories

One table per entity. Rows are written with model_dump(mode="json") and read
back through model_validate. The reservation is a conditional update filtered
on reserved = false, so PostgREST applies it atomically.
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional

from supabase import Client

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
from ..event_log import AgentEvent
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

logger = logging.getLogger(__name__)


def _serialize(fields: dict) -> dict:
    row = {}
    for key, value in fields.items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        row[key] = value
    return row


class _SupabaseTable:
    """Thin wrapper pairing a table name with the model its rows decode into"""

    def __init__(self, client: Client, table: str, model, key: str = "id"):
        self.client = client
        self.table = table
        self.model = model
        self.key = key

    def query(self):
        return self.client.table(self.table).select("*")

    def insert(self, record):
        self.client.table(self.table).insert(record.model_dump(mode="json")).execute()
        return record

    def get(self, key_value: str):
        result = self.query().eq(self.key, key_value).limit(1).execute()
        return self.model.model_validate(result.data[0]) if result.data else None

    def update(self, key_value: str, **fields):
        result = self.client.table(self.table)\
            .update(_serialize(fields))\
            .eq(self.key, key_value)\
            .execute()
        if not result.data:
            raise NotFoundError(self.model.__name__, key_value)
        return self.model.model_validate(result.data[0])

    def rows(self, result) -> list:
        return [self.model.model_validate(row) for row in result.data]


class SupabaseShortageRequestStore(ShortageRequestStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "shortage_requests", ShortageRequest)

    def add(self, request: ShortageRequest) -> ShortageRequest:
        return self._t.insert(request)

    def get(self, request_id: str) -> Optional[ShortageRequest]:
        return self._t.get(request_id)

    def update(self, request_id: str, **fields) -> ShortageRequest:
        return self._t.update(request_id, **fields)

    def find_recent(self, hospital_id, blood_type, statuses, since) -> List[ShortageRequest]:
        result = self._t.query()\
            .eq("hospital_id", hospital_id)\
            .eq("blood_type", blood_type)\
            .in_("status", list(statuses))\
            .gte("created_at", since.isoformat())\
            .execute()
        return self._t.rows(result)


class SupabaseWorkflowStateStore(WorkflowStateStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "workflow_states", WorkflowState, key="request_id")

    def create(self, state: WorkflowState) -> WorkflowState:
        # request_id is the primary key; ignore_duplicates keeps the first row
        self._t.client.table(self._t.table)\
            .upsert(state.model_dump(mode="json"), on_conflict="request_id", ignore_duplicates=True)\
            .execute()
        return self.get(state.request_id) or state

    def get(self, request_id: str) -> Optional[WorkflowState]:
        return self._t.get(request_id)

    def update(self, request_id: str, **fields) -> WorkflowState:
        fields.setdefault("updated_at", utcnow())
        return self._t.update(request_id, **fields)

    def list_by_status(self, status: str) -> List[WorkflowState]:
        return self._t.rows(self._t.query().eq("status", status).execute())


class SupabaseDonorResponseStore(DonorResponseStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "donor_responses", DonorCandidateResponse)

    def add(self, response: DonorCandidateResponse) -> DonorCandidateResponse:
        return self._t.insert(response)

    def get(self, response_id: str) -> Optional[DonorCandidateResponse]:
        return self._t.get(response_id)

    def find(self, request_id, donor_id, status=None) -> Optional[DonorCandidateResponse]:
        query = self._t.query().eq("request_id", request_id).eq("donor_id", donor_id)
        if status:
            query = query.eq("status", status)
        rows = self._t.rows(query.limit(1).execute())
        return rows[0] if rows else None

    def list_for_request(self, request_id, status=None) -> List[DonorCandidateResponse]:
        query = self._t.query().eq("request_id", request_id)
        if status:
            query = query.eq("status", status)
        return self._t.rows(query.order("notified_at").execute())

    def list_for_donor(self, donor_id: str) -> List[DonorCandidateResponse]:
        return self._t.rows(self._t.query().eq("donor_id", donor_id).execute())

    def list_since(self, since: datetime) -> List[DonorCandidateResponse]:
        return self._t.rows(self._t.query().gte("notified_at", since.isoformat()).execute())

    def update(self, response_id: str, **fields) -> DonorCandidateResponse:
        return self._t.update(response_id, **fields)


class SupabaseInventoryStore(InventoryStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "blood_inventory", InventoryUnit)

    def add(self, unit: InventoryUnit) -> InventoryUnit:
        return self._t.insert(unit)

    def get(self, unit_id: str) -> Optional[InventoryUnit]:
        return self._t.get(unit_id)

    def list_available(self, blood_types, exclude_hospital_id, expires_after) -> List[InventoryUnit]:
        result = self._t.query()\
            .in_("blood_type", list(blood_types))\
            .neq("hospital_id", exclude_hospital_id)\
            .gt("units", 0)\
            .eq("reserved", False)\
            .gt("expiry_date", expires_after.isoformat())\
            .execute()
        return self._t.rows(result)

    def list_for_hospital(self, hospital_id: str, blood_type: str) -> List[InventoryUnit]:
        result = self._t.query().eq("hospital_id", hospital_id).eq("blood_type", blood_type).execute()
        return self._t.rows(result)

    def reserve(self, unit_id: str, request_id: str, at: datetime) -> InventoryUnit:
        result = self._t.client.table(self._t.table)\
            .update({"reserved": True, "reserved_for": request_id, "reserved_at": at.isoformat()})\
            .eq("id", unit_id)\
            .eq("reserved", False)\
            .execute()
        if not result.data:
            if self.get(unit_id) is None:
                raise NotFoundError("InventoryUnit", unit_id)
            raise AlreadyReservedError(unit_id)
        return InventoryUnit.model_validate(result.data[0])

    def release_for(self, request_id: str) -> List[InventoryUnit]:
        result = self._t.client.table(self._t.table)\
            .update({"reserved": False, "reserved_for": None, "reserved_at": None})\
            .eq("reserved_for", request_id)\
            .execute()
        return self._t.rows(result)


class SupabaseInventoryThresholdStore(InventoryThresholdStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "inventory_thresholds", InventoryThreshold)

    def add(self, threshold: InventoryThreshold) -> InventoryThreshold:
        return self._t.insert(threshold)

    def get(self, hospital_id: str, blood_type: str) -> Optional[InventoryThreshold]:
        rows = self._t.rows(
            self._t.query().eq("hospital_id", hospital_id).eq("blood_type", blood_type).limit(1).execute()
        )
        return rows[0] if rows else None

    def list_for_hospital(self, hospital_id: str) -> List[InventoryThreshold]:
        return self._t.rows(self._t.query().eq("hospital_id", hospital_id).execute())


class SupabaseTransportStore(TransportStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "transport_requests", TransportRequest)

    def add(self, transport: TransportRequest) -> TransportRequest:
        return self._t.insert(transport)

    def get(self, transport_id: str) -> Optional[TransportRequest]:
        return self._t.get(transport_id)

    def update(self, transport_id: str, **fields) -> TransportRequest:
        return self._t.update(transport_id, **fields)

    def list_for_request(self, request_id: str) -> List[TransportRequest]:
        return self._t.rows(self._t.query().eq("request_id", request_id).execute())


class SupabaseDonorStore(DonorStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "donors", Donor)

    def add(self, donor: Donor) -> Donor:
        return self._t.insert(donor)

    def get(self, donor_id: str) -> Optional[Donor]:
        return self._t.get(donor_id)

    def update(self, donor_id: str, **fields) -> Donor:
        return self._t.update(donor_id, **fields)

    def list_by_blood_types(self, blood_types: Iterable[str], status: str = "approved") -> List[Donor]:
        result = self._t.query().in_("blood_group", list(blood_types)).eq("status", status).execute()
        return self._t.rows(result)

    def list_all(self) -> List[Donor]:
        return self._t.rows(self._t.query().execute())


class SupabaseHospitalStore(HospitalStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "hospitals", Hospital)

    def add(self, hospital: Hospital) -> Hospital:
        return self._t.insert(hospital)

    def get(self, hospital_id: str) -> Optional[Hospital]:
        return self._t.get(hospital_id)

    def list_approved(self) -> List[Hospital]:
        return self._t.rows(self._t.query().eq("status", "approved").execute())


class SupabaseEventStore(EventStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "agent_events", AgentEvent)

    def append(self, event) -> None:
        self._t.insert(event)

    def query(self, event_type=None, request_id=None, processed=None, limit=None) -> list:
        query = self._t.query()
        if event_type:
            query = query.eq("type", event_type)
        if request_id:
            query = query.eq("request_id", request_id)
        if processed is not None:
            query = query.eq("processed", processed)
        query = query.order("created_at")
        if limit:
            query = query.limit(limit)
        return self._t.rows(query.execute())

    def mark_processed(self, event_id: str) -> None:
        self._t.update(event_id, processed=True)


class SupabaseDecisionStore(DecisionStore):
    def __init__(self, client: Client):
        self._t = _SupabaseTable(client, "agent_decisions", AgentDecision)

    def append(self, decision: AgentDecision) -> AgentDecision:
        return self._t.insert(decision)

    def get(self, decision_id: str) -> Optional[AgentDecision]:
        return self._t.get(decision_id)

    def query(self, request_id=None, agent_type=None, event_type=None, since=None, limit=None) -> List[AgentDecision]:
        query = self._t.query()
        if request_id:
            query = query.eq("request_id", request_id)
        if agent_type:
            query = query.eq("agent_type", agent_type)
        if event_type:
            query = query.eq("event_type", event_type)
        if since:
            query = query.gte("created_at", since.isoformat())
        query = query.order("created_at")
        if limit:
            query = query.limit(limit)
        return self._t.rows(query.execute())

    def record_outcome(self, decision_id: str, outcome: str, details: dict, at: datetime) -> AgentDecision:
        return self._t.update(decision_id, outcome=outcome, outcome_details=details, outcome_recorded_at=at)


def supabase_repositories(client: Client) -> Repositories:
    logger.info("Using Supabase repositories")
    return Repositories(
        requests=SupabaseShortageRequestStore(client),
        workflows=SupabaseWorkflowStateStore(client),
        responses=SupabaseDonorResponseStore(client),
        inventory=SupabaseInventoryStore(client),
        thresholds=SupabaseInventoryThresholdStore(client),
        transports=SupabaseTransportStore(client),
        donors=SupabaseDonorStore(client),
        hospitals=SupabaseHospitalStore(client),
        events=SupabaseEventStore(client),
        decisions=SupabaseDecisionStore(client),
    )
