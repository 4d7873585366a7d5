"""
Groq reasoning client

Wraps Llama 3.3 70B on Groq behind a Result-style return value. A call is
attempted once; any failure (network, timeout, non-JSON, non-object) comes
back as a failed ReasoningOutcome so every caller can run its fallback.

Based on official Groq documentation:
https://console.groq.com/docs/quickstart
"""

import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from groq import Groq

from ..exceptions import ReasoningError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"


@dataclass
class ReasoningOutcome:
    """Either a value or a ReasoningError, never both"""
    value: Any = None
    error: Optional[ReasoningError] = None
    model: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def succeeded(cls, value: Any, model: Optional[str] = None, raw: Optional[Dict[str, Any]] = None) -> "ReasoningOutcome":
        return cls(value=value, model=model, raw=raw or {})

    @classmethod
    def failed(cls, error: ReasoningError) -> "ReasoningOutcome":
        return cls(error=error)


class ReasoningClient:
    """Interface: prompt in, JSON object out"""

    model: str = "none"

    def reason(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float = 0.3,
    ) -> ReasoningOutcome:
        raise NotImplementedError


class DisabledReasoningClient(ReasoningClient):
    """Used when no API key is configured; every decision takes its fallback"""

    model = "disabled"

    def reason(self, prompt: str, system_prompt: str, temperature: float = 0.3) -> ReasoningOutcome:
        return ReasoningOutcome.failed(ReasoningError("Reasoning service not configured"))


class GroqReasoningClient(ReasoningClient):
    """
    Wrapper for Groq API with Llama 3.3 70B
    Returns parsed JSON objects for the agents' decision prompts
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, max_tokens: int = 1000):
        """
        Initialize Groq client

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY env var)
            model: Chat model name

        Raises:
            ValueError: If API key not provided
        """
        self.api_key = api_key or os.environ.get("GROQ_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Groq API key required. Set GROQ_API_KEY environment variable or pass api_key parameter."
            )

        self.client = Groq(api_key=self.api_key)
        self.model = model or DEFAULT_MODEL
        self.max_tokens = max_tokens

        # Rate limiting (Groq is fast but still has limits)
        self._lock = threading.Lock()
        self.last_request_time = 0.0
        self.min_request_interval = 0.1  # 10 requests/sec max

        logger.info(f"Groq reasoning client initialized with model: {self.model}")

    def _rate_limit(self):
        """Enforce rate limiting between requests"""
        with self._lock:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.min_request_interval:
                time.sleep(self.min_request_interval - elapsed)
            self.last_request_time = time.time()

    def reason(self, prompt: str, system_prompt: str, temperature: float = 0.3) -> ReasoningOutcome:
        self._rate_limit()

        try:
            chat_completion = self.client.chat.completions.create(
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                model=self.model,
                temperature=temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},  # Force JSON output
            )
            content = chat_completion.choices[0].message.content
            result = json.loads(content)
        except json.JSONDecodeError as e:
            return ReasoningOutcome.failed(ReasoningError(f"Groq returned invalid JSON: {e}"))
        except Exception as e:
            return ReasoningOutcome.failed(ReasoningError(f"Groq API error: {e}"))

        if not isinstance(result, dict):
            return ReasoningOutcome.failed(
                ReasoningError("Groq response is not a JSON object", details={"content": content})
            )

        return ReasoningOutcome.succeeded(result, model=self.model, raw=result)


def build_reasoning_client(api_key: Optional[str], model: Optional[str] = None) -> ReasoningClient:
    """Groq when a key is available, otherwise the always-fallback client"""
    if not api_key:
        logger.warning("GROQ_API_KEY not set. All decisions will use algorithmic fallbacks.")
        return DisabledReasoningClient()
    return GroqReasoningClient(api_key=api_key, model=model)
