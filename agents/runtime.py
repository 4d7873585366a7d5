"""
HaemoFlow agent runtime

Wires the agents to the task queue. Every AgentTask is mapped to exactly one
handler; the queue refuses to start with an incomplete table.
"""

import logging
from functools import partial
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from haemo_core.domain import utcnow
from haemo_core.store.base import Repositories
from haemo_core.utils.reasoning import DisabledReasoningClient, ReasoningClient

from .config import AgentConfig
from .context import AgentContext
from .nodes.coordinator import handle_no_response_timeout, select_optimal_match
from .nodes.donor import match_donors
from .nodes.inventory import process_inventory_search
from .nodes.logistics import plan_transport
from .task_queue import AgentTask, TaskQueue
from .tools.notifier import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)


def build_dispatch_table(ctx: AgentContext) -> Dict[AgentTask, Callable]:
    return {
        AgentTask.MATCH_DONORS: partial(match_donors, ctx),
        AgentTask.INVENTORY_SEARCH: partial(process_inventory_search, ctx),
        AgentTask.PLAN_TRANSPORT: partial(plan_transport, ctx),
        AgentTask.SELECT_OPTIMAL_MATCH: partial(select_optimal_match, ctx),
        AgentTask.HANDLE_TIMEOUT: partial(handle_no_response_timeout, ctx),
    }


def build_context(
    repos: Repositories,
    reasoning: Optional[ReasoningClient] = None,
    notifier: Optional[Notifier] = None,
    workers: int = 0,
    max_attempts: int = AgentConfig.TASK_MAX_ATTEMPTS,
    clock: Callable = utcnow,
    base_url: str = AgentConfig.APP_BASE_URL,
    response_window_minutes: int = AgentConfig.RESPONSE_WINDOW_MINUTES,
    local_timezone: str = AgentConfig.LOCAL_TIMEZONE,
) -> AgentContext:
    """
    Assemble an AgentContext with a bound task queue.

    The queue is not started; call ctx.tasks.start() for background workers
    or ctx.tasks.drain() to process on the current thread.
    """
    tasks = TaskQueue(workers=workers, max_attempts=max_attempts)
    ctx = AgentContext(
        repos=repos,
        reasoning=reasoning or DisabledReasoningClient(),
        notifier=notifier or LoggingNotifier(),
        tasks=tasks,
        clock=clock,
        base_url=base_url,
        response_window_minutes=response_window_minutes,
        local_timezone=ZoneInfo(local_timezone),
    )
    tasks.bind(build_dispatch_table(ctx))
    logger.info(f"[Runtime] Agent context ready ({workers} workers, max {max_attempts} attempts)")
    return ctx
