"""
Database Client
Supabase client initialization and agent runtime wiring
"""

import logging
from supabase import create_client, Client
from functools import lru_cache

from agents.context import AgentContext
from agents.runtime import build_context
from agents.tools.notifier import LoggingNotifier, WebhookNotifier
from haemo_core.store.memory import memory_repositories
from haemo_core.store.supabase_store import supabase_repositories
from haemo_core.utils.reasoning import build_reasoning_client

from .config import get_settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase() -> Client:
    """
    Get Supabase client (singleton pattern)

    Returns:
        Supabase client instance

    Raises:
        ValueError: If Supabase credentials are not configured
    """
    settings = get_settings()

    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "Supabase credentials not configured. "
            "Please set SUPABASE_URL and SUPABASE_KEY in .env file"
        )

    return create_client(settings.supabase_url, settings.supabase_key)


@lru_cache()
def get_agent_context() -> AgentContext:
    """
    Get the agent runtime (singleton pattern)

    Repositories, reasoning client, notifier and the task queue are built once
    and shared by every request. Workers are started by the app lifespan.

    Returns:
        AgentContext instance
    """
    settings = get_settings()

    if settings.storage_backend == "supabase":
        repos = supabase_repositories(get_supabase())
    elif settings.storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on restart")
        repos = memory_repositories()
    else:
        raise ValueError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")

    if settings.notify_webhook_url:
        notifier = WebhookNotifier(settings.notify_webhook_url)
    else:
        notifier = LoggingNotifier()

    return build_context(
        repos,
        reasoning=build_reasoning_client(settings.groq_api_key),
        notifier=notifier,
        workers=settings.agent_workers,
        max_attempts=settings.task_max_attempts,
        base_url=settings.app_base_url,
        response_window_minutes=settings.response_window_minutes,
        local_timezone=settings.local_timezone,
    )
