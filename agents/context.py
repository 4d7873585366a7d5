"""
Agent runtime context

Bundles the injected collaborators every agent needs: repositories, the event
log, the reasoning client, the notifier, the task queue and a clock.
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from haemo_core.decisions import AgentDecision, AgentType
from haemo_core.domain import utcnow
from haemo_core.event_log import EventLog
from haemo_core.store.base import Repositories
from haemo_core.utils.reasoning import ReasoningClient

from .task_queue import AgentTask, TaskQueue
from .tools.notifier import Notifier

logger = logging.getLogger(__name__)


class AgentContext:
    def __init__(
        self,
        repos: Repositories,
        reasoning: ReasoningClient,
        notifier: Notifier,
        tasks: TaskQueue,
        clock: Callable = utcnow,
        base_url: str = "http://localhost:8000",
        response_window_minutes: int = 60,
        local_timezone: tzinfo = timezone.utc,
    ):
        self.repos = repos
        self.reasoning = reasoning
        self.notifier = notifier
        self.tasks = tasks
        self.clock = clock
        self.base_url = base_url.rstrip("/")
        self.response_window_minutes = response_window_minutes
        self.local_timezone = local_timezone
        self.events = EventLog(repos.events, clock=clock)

    def now(self):
        return self.clock()

    def local_now(self) -> datetime:
        """Wall-clock time at the hospitals; traffic and time-of-day bands read this hour"""
        return self.now().astimezone(self.local_timezone)

    def enqueue(self, task: AgentTask, **payload):
        return self.tasks.enqueue(task, **payload)

    def record_decision(
        self,
        agent_type: AgentType,
        event_type: str,
        decision,
        request_id: Optional[str] = None,
        raw_context: Optional[Dict[str, Any]] = None,
    ) -> AgentDecision:
        record = AgentDecision(
            agent_type=agent_type,
            event_type=event_type,
            request_id=request_id,
            decision=decision,
            confidence=decision.confidence,
            raw_context=raw_context or {},
            created_at=self.now(),
        )
        self.repos.decisions.append(record)
        logger.debug(f"[Audit] {agent_type.value}/{event_type} recorded for {request_id}")
        return record

    def response_url(self, token: str, status: str) -> str:
        return f"{self.base_url}/api/v1/donor/respond?{urlencode({'token': token, 'status': status})}"
