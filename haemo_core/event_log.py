"""
Event Log

Append-only record of typed facts published by the agents. Consumers poll and
filter; the `processed` flag is a best-effort marker, not a lock.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .domain import new_id, utcnow

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SHORTAGE_REQUEST = "shortage.request.v1"
    DONOR_CANDIDATE = "donor.candidate.v1"
    DONOR_RESPONSE = "donor.response.v1"
    INVENTORY_MATCH = "inventory.match.v1"
    LOGISTICS_PLAN = "logistics.plan.v1"
    LOGISTICS_STATUS = "logistics.status.v1"
    VERIFICATION_DOCUMENT_FAILED = "verification.document.failed.v1"
    VERIFICATION_ELIGIBILITY_PASSED = "verification.eligibility.passed.v1"
    VERIFICATION_ELIGIBILITY_FAILED = "verification.eligibility.failed.v1"


class AgentEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    type: EventType
    payload: Dict[str, Any] = Field(default_factory=dict)
    producing_agent: str
    request_id: Optional[str] = None
    processed: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class EventLog:
    """Publishes and queries events over an EventStore"""

    def __init__(self, store, clock=utcnow):
        self.store = store
        self.clock = clock

    def publish(
        self,
        event_type: EventType,
        payload: Dict[str, Any],
        producing_agent: str,
        request_id: Optional[str] = None,
    ) -> AgentEvent:
        event = AgentEvent(
            type=event_type,
            payload=payload,
            producing_agent=producing_agent,
            request_id=request_id,
            created_at=self.clock(),
        )
        self.store.append(event)
        logger.info(f"[EventLog] Published {event_type.value} by {producing_agent}: {event.id}")
        return event

    def unprocessed(self, event_type: EventType) -> List[AgentEvent]:
        return self.store.query(event_type=event_type.value, processed=False)

    def mark_processed(self, event_id: str) -> None:
        self.store.mark_processed(event_id)

    def for_request(self, request_id: str) -> List[AgentEvent]:
        return self.store.query(request_id=request_id)

    def recent(self, limit: int = 50, event_type: Optional[EventType] = None) -> List[AgentEvent]:
        events = self.store.query(event_type=event_type.value if event_type else None)
        return events[-limit:]
