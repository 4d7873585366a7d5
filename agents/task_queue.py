"""
Agent task queue

Agents never call each other directly. A step that hands off work enqueues a
typed message and returns; a pool of worker threads consumes the queue.
Delivery is at-least-once: a handler that raises is retried until
max_attempts, so handlers must tolerate running twice.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from haemo_core.domain import new_id
from haemo_core.exceptions import HaemoFlowError

logger = logging.getLogger(__name__)


class AgentTask(str, Enum):
    MATCH_DONORS = "match_donors"
    INVENTORY_SEARCH = "inventory_search"
    PLAN_TRANSPORT = "plan_transport"
    SELECT_OPTIMAL_MATCH = "select_optimal_match"
    HANDLE_TIMEOUT = "handle_timeout"


@dataclass
class TaskMessage:
    task: AgentTask
    payload: Dict[str, Any]
    attempt: int = 1
    message_id: str = field(default_factory=new_id)


Handler = Callable[..., Any]


class TaskQueue:
    """
    Typed message queue with a supervising worker pool.

    workers=0 runs no threads; messages are processed only when drain() is
    called, which keeps tests and scripts deterministic.
    """

    def __init__(self, workers: int = 0, max_attempts: int = 3, maxsize: int = 0):
        self.workers = workers
        self.max_attempts = max_attempts
        self._queue: "queue.Queue[TaskMessage]" = queue.Queue(maxsize=maxsize)
        self._handlers: Optional[Dict[AgentTask, Handler]] = None
        self._threads: List[threading.Thread] = []
        self._stopping = threading.Event()
        self.dead_letters: List[TaskMessage] = []

    def bind(self, handlers: Dict[AgentTask, Handler]) -> None:
        """Install the dispatch table; every AgentTask must be mapped"""
        missing = [task.value for task in AgentTask if task not in handlers]
        if missing:
            raise ValueError(f"No handler registered for tasks: {', '.join(missing)}")
        self._handlers = dict(handlers)

    def enqueue(self, task: AgentTask, **payload) -> TaskMessage:
        message = TaskMessage(task=task, payload=payload)
        self._queue.put(message)
        logger.debug(f"[TaskQueue] Enqueued {task.value} {payload}")
        return message

    def pending(self) -> int:
        return self._queue.qsize()

    # ============================================
    # Processing
    # ============================================

    def _process(self, message: TaskMessage) -> None:
        if self._handlers is None:
            raise RuntimeError("TaskQueue has no dispatch table; call bind() first")

        handler = self._handlers[message.task]
        try:
            handler(**message.payload)
        except HaemoFlowError as e:
            if e.status_code >= 500 and message.attempt < self.max_attempts:
                self._retry(message, e)
            else:
                # Domain rejections (not found, cold chain, lost race) won't change on retry
                logger.warning(f"[TaskQueue] {message.task.value} rejected: {e.message}")
                self.dead_letters.append(message)
        except Exception as e:
            if message.attempt < self.max_attempts:
                self._retry(message, e)
            else:
                logger.error(
                    f"[TaskQueue] {message.task.value} failed after {message.attempt} attempts: {e}",
                    exc_info=True,
                )
                self.dead_letters.append(message)

    def _retry(self, message: TaskMessage, error: Exception) -> None:
        logger.warning(
            f"[TaskQueue] {message.task.value} failed (attempt {message.attempt}/"
            f"{self.max_attempts}): {error}. Retrying."
        )
        self._queue.put(TaskMessage(
            task=message.task,
            payload=message.payload,
            attempt=message.attempt + 1,
            message_id=message.message_id,
        ))

    def drain(self, max_messages: int = 1000) -> int:
        """Process queued messages on the calling thread until the queue is empty"""
        processed = 0
        while processed < max_messages:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                self._process(message)
            finally:
                self._queue.task_done()
            processed += 1
        return processed

    def _worker(self) -> None:
        while not self._stopping.is_set():
            try:
                message = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self._process(message)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self.workers == 0 or self._threads:
            return
        self._stopping.clear()
        for i in range(self.workers):
            thread = threading.Thread(target=self._worker, name=f"agent-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info(f"[TaskQueue] Started {self.workers} workers")

    def join(self) -> None:
        """Block until every queued message, retries included, has been handled"""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        self._stopping.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("[TaskQueue] Workers stopped")
