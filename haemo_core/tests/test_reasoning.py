"""
Tests for the Groq reasoning client and decision-point parsers
"""

from unittest.mock import MagicMock, patch

import pytest

from haemo_core.utils.prompts import (
    reason_about_donor_selection,
    reason_about_urgency,
)
from haemo_core.utils.reasoning import (
    DisabledReasoningClient,
    GroqReasoningClient,
    ReasoningOutcome,
    build_reasoning_client,
)


URGENCY_CONTEXT = {
    "blood_type": "O-",
    "current_units": 0,
    "daily_usage": 2,
    "days_remaining": 0,
    "rarity": 10,
    "algorithmic_urgency": "critical",
    "algorithmic_priority": 100,
}


def _completion(content: str):
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = content
    return completion


@pytest.fixture
def groq():
    with patch("haemo_core.utils.reasoning.Groq") as mock_class:
        mock_client = MagicMock()
        mock_class.return_value = mock_client
        yield mock_client


class TestGroqReasoningClient:

    def test_json_object(self, groq):
        groq.chat.completions.create.return_value = _completion('{"urgency": "high", "confidence": 0.9}')
        client = GroqReasoningClient(api_key="test-key")

        outcome = client.reason("prompt", "system")

        assert outcome.ok
        assert outcome.value["urgency"] == "high"
        kwargs = groq.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_invalid_json_fails(self, groq):
        groq.chat.completions.create.return_value = _completion("not json")
        outcome = GroqReasoningClient(api_key="test-key").reason("prompt", "system")
        assert not outcome.ok
        assert "invalid JSON" in outcome.error.message

    def test_non_object_fails(self, groq):
        groq.chat.completions.create.return_value = _completion("[1, 2]")
        outcome = GroqReasoningClient(api_key="test-key").reason("prompt", "system")
        assert not outcome.ok

    def test_api_error_fails(self, groq):
        groq.chat.completions.create.side_effect = RuntimeError("connection reset")
        outcome = GroqReasoningClient(api_key="test-key").reason("prompt", "system")
        assert not outcome.ok
        assert "connection reset" in outcome.error.message

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        with pytest.raises(ValueError):
            GroqReasoningClient(api_key=None)


def test_build_without_key_disables_reasoning():
    client = build_reasoning_client("")
    assert isinstance(client, DisabledReasoningClient)
    assert not client.reason("p", "s").ok


class TestParsers:

    def _client(self, payload):
        client = MagicMock()
        client.reason.return_value = ReasoningOutcome.succeeded(payload, model="test")
        return client

    def test_urgency_parsed(self):
        outcome = reason_about_urgency(self._client({
            "urgency": "critical",
            "priority_score": 95,
            "reasoning": "O- at zero stock",
            "confidence": 0.9,
        }), URGENCY_CONTEXT)
        assert outcome.ok
        assert outcome.value.urgency == "critical"

    def test_unknown_urgency_rejected(self):
        outcome = reason_about_urgency(self._client({"urgency": "apocalyptic", "priority_score": 90}), URGENCY_CONTEXT)
        assert not outcome.ok

    def test_selection_index_out_of_range(self):
        candidates = [{
            "donor_name": "A B", "distance_km": 3.0, "eta_minutes": 30,
            "match_score": 80.0, "reliability_rate": 0.5, "health_score": 100,
        }]
        context = {"blood_type": "O-", "urgency": "high", "units_needed": 1, "time_of_day": "10:00"}

        outcome = reason_about_donor_selection(
            self._client({"selected_index": 3, "reasoning": "x", "confidence": 0.8}), candidates, context
        )
        assert not outcome.ok

        outcome = reason_about_donor_selection(
            self._client({"selected_index": 0, "reasoning": "closest", "confidence": 0.8}), candidates, context
        )
        assert outcome.ok
        assert outcome.value.selected_index == 0

    def test_failure_passes_through(self):
        outcome = reason_about_urgency(DisabledReasoningClient(), URGENCY_CONTEXT)
        assert not outcome.ok
