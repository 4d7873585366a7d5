"""
Repository interfaces

Agents depend on these abstractions only. Implementations:
- store.memory: thread-safe in-process tables (tests, local runs)
- store.supabase_store: Supabase/PostgREST tables
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

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
)


class ShortageRequestStore(ABC):
    @abstractmethod
    def add(self, request: ShortageRequest) -> ShortageRequest: ...

    @abstractmethod
    def get(self, request_id: str) -> Optional[ShortageRequest]: ...

    @abstractmethod
    def update(self, request_id: str, **fields) -> ShortageRequest: ...

    @abstractmethod
    def find_recent(
        self, hospital_id: str, blood_type: str, statuses: Iterable[str], since: datetime
    ) -> List[ShortageRequest]:
        """Requests of one hospital and type in the given statuses created after `since`"""


class WorkflowStateStore(ABC):
    @abstractmethod
    def create(self, state: WorkflowState) -> WorkflowState:
        """Insert the single live row for a request; an existing row is returned unchanged"""

    @abstractmethod
    def get(self, request_id: str) -> Optional[WorkflowState]: ...

    @abstractmethod
    def update(self, request_id: str, **fields) -> WorkflowState: ...

    @abstractmethod
    def list_by_status(self, status: str) -> List[WorkflowState]: ...


class DonorResponseStore(ABC):
    @abstractmethod
    def add(self, response: DonorCandidateResponse) -> DonorCandidateResponse: ...

    @abstractmethod
    def get(self, response_id: str) -> Optional[DonorCandidateResponse]: ...

    @abstractmethod
    def find(
        self, request_id: str, donor_id: str, status: Optional[str] = None
    ) -> Optional[DonorCandidateResponse]: ...

    @abstractmethod
    def list_for_request(self, request_id: str, status: Optional[str] = None) -> List[DonorCandidateResponse]: ...

    @abstractmethod
    def list_for_donor(self, donor_id: str) -> List[DonorCandidateResponse]: ...

    @abstractmethod
    def list_since(self, since: datetime) -> List[DonorCandidateResponse]: ...

    @abstractmethod
    def update(self, response_id: str, **fields) -> DonorCandidateResponse: ...


class InventoryStore(ABC):
    @abstractmethod
    def add(self, unit: InventoryUnit) -> InventoryUnit: ...

    @abstractmethod
    def get(self, unit_id: str) -> Optional[InventoryUnit]: ...

    @abstractmethod
    def list_available(
        self, blood_types: Iterable[str], exclude_hospital_id: str, expires_after: datetime
    ) -> List[InventoryUnit]:
        """Unreserved, non-empty units of the given types expiring after the cutoff"""

    @abstractmethod
    def list_for_hospital(self, hospital_id: str, blood_type: str) -> List[InventoryUnit]: ...

    @abstractmethod
    def reserve(self, unit_id: str, request_id: str, at: datetime) -> InventoryUnit:
        """
        Flip `reserved` only if it is still false.

        Raises AlreadyReservedError when another request got there first.
        Must be a conditional update, never read-then-write.
        """

    @abstractmethod
    def release_for(self, request_id: str) -> List[InventoryUnit]: ...


class InventoryThresholdStore(ABC):
    @abstractmethod
    def add(self, threshold: InventoryThreshold) -> InventoryThreshold: ...

    @abstractmethod
    def get(self, hospital_id: str, blood_type: str) -> Optional[InventoryThreshold]: ...

    @abstractmethod
    def list_for_hospital(self, hospital_id: str) -> List[InventoryThreshold]: ...


class TransportStore(ABC):
    @abstractmethod
    def add(self, transport: TransportRequest) -> TransportRequest: ...

    @abstractmethod
    def get(self, transport_id: str) -> Optional[TransportRequest]: ...

    @abstractmethod
    def update(self, transport_id: str, **fields) -> TransportRequest: ...

    @abstractmethod
    def list_for_request(self, request_id: str) -> List[TransportRequest]: ...


class DonorStore(ABC):
    @abstractmethod
    def add(self, donor: Donor) -> Donor: ...

    @abstractmethod
    def get(self, donor_id: str) -> Optional[Donor]: ...

    @abstractmethod
    def update(self, donor_id: str, **fields) -> Donor: ...

    @abstractmethod
    def list_by_blood_types(self, blood_types: Iterable[str], status: str = "approved") -> List[Donor]: ...

    @abstractmethod
    def list_all(self) -> List[Donor]: ...


class HospitalStore(ABC):
    @abstractmethod
    def add(self, hospital: Hospital) -> Hospital: ...

    @abstractmethod
    def get(self, hospital_id: str) -> Optional[Hospital]: ...

    @abstractmethod
    def list_approved(self) -> List[Hospital]: ...


class EventStore(ABC):
    @abstractmethod
    def append(self, event) -> None: ...

    @abstractmethod
    def query(
        self,
        event_type: Optional[str] = None,
        request_id: Optional[str] = None,
        processed: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> list:
        """Events in publication order"""

    @abstractmethod
    def mark_processed(self, event_id: str) -> None: ...


class DecisionStore(ABC):
    @abstractmethod
    def append(self, decision: AgentDecision) -> AgentDecision: ...

    @abstractmethod
    def get(self, decision_id: str) -> Optional[AgentDecision]: ...

    @abstractmethod
    def query(
        self,
        request_id: Optional[str] = None,
        agent_type: Optional[str] = None,
        event_type: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[AgentDecision]:
        """Decisions in creation order"""

    @abstractmethod
    def record_outcome(self, decision_id: str, outcome: str, details: dict, at: datetime) -> AgentDecision: ...


@dataclass
class Repositories:
    """Everything an agent may read or write"""
    requests: ShortageRequestStore
    workflows: WorkflowStateStore
    responses: DonorResponseStore
    inventory: InventoryStore
    thresholds: InventoryThresholdStore
    transports: TransportStore
    donors: DonorStore
    hospitals: HospitalStore
    events: EventStore
    decisions: DecisionStore
