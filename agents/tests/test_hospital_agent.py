"""
Unit Tests for the Hospital Agent (shortage detection)
"""

import pytest

from agents.nodes.hospital import (
    StockAlert,
    check_inventory_and_auto_alert,
    detect_shortage,
    monitor_all_hospitals,
    priority_score,
    process_stock_alert,
    urgency_for,
)
from agents.task_queue import AgentTask
from haemo_core.domain import Hospital, InventoryThreshold
from haemo_core.event_log import EventType
from haemo_core.exceptions import NotFoundError, ValidationError
from haemo_core.utils.reasoning import ReasoningOutcome


class TestDetectionRules:

    def test_empty_stock_is_critical(self):
        assessment = detect_shortage("O-", current_units=0, daily_usage=2)
        assert assessment.is_shortage
        assert assessment.urgency == "critical"
        assert assessment.priority_score == 100
        assert assessment.units_needed == 10
        assert assessment.search_radius_km == 20

    def test_sufficient_stock(self):
        assessment = detect_shortage("A+", current_units=20, daily_usage=2)
        assert not assessment.is_shortage
        assert assessment.days_remaining == 10

    def test_rare_type_escalates_to_high(self):
        # 2.5 days is medium for common types, high for rare ones
        assert urgency_for("AB-", 5, 2.5) == "high"
        assert urgency_for("O+", 5, 2.5) == "medium"

    def test_priority_capped(self):
        assert priority_score("critical", "AB-", 0.1) == 100
        assert priority_score("low", "O+", 5) == 28

    def test_units_needed_never_below_one(self):
        assert detect_shortage("B+", current_units=9, daily_usage=2).units_needed == 1


class TestProcessStockAlert:

    def test_explicit_request_creates_everything(self, ctx, repos, hospital):
        outcome = process_stock_alert(ctx, StockAlert(
            hospital_id=hospital.id, blood_type="O+", current_units=1, units_needed=2, urgency="high",
        ))

        request = outcome.request
        assert outcome.detected
        assert request.urgency == "high"
        assert request.priority_score == 63
        assert request.search_radius_km == 35
        assert request.units_needed == 2
        assert request.latitude == hospital.latitude
        assert request.contact_name == "Dr. Rao"

        workflow = repos.workflows.get(request.id)
        assert workflow.status == "pending"
        assert workflow.current_step == "shortage_detected"

        events = ctx.events.for_request(request.id)
        assert [e.type for e in events] == [EventType.SHORTAGE_REQUEST]
        assert events[0].payload["search_radius_km"] == 35

        decisions = repos.decisions.query(request_id=request.id)
        assert decisions[0].event_type == "shortage_detection"
        assert decisions[0].decision.source == "fallback"

    def test_hands_off_to_donor_matching(self, ctx, hospital):
        process_stock_alert(ctx, StockAlert(hospital_id=hospital.id, blood_type="A+", current_units=0))
        assert ctx.tasks.pending() == 1
        assert ctx.tasks._queue.queue[0].task == AgentTask.MATCH_DONORS

    def test_no_shortage_creates_nothing(self, ctx, repos, hospital):
        outcome = process_stock_alert(ctx, StockAlert(hospital_id=hospital.id, blood_type="A+", current_units=30))
        assert not outcome.detected
        assert outcome.request is None
        assert repos.decisions.query() == []
        assert ctx.tasks.pending() == 0

    def test_reasoning_reply_used(self, ctx, reasoning, hospital):
        reasoning.reason.return_value = ReasoningOutcome.succeeded({
            "urgency": "critical",
            "priority_score": 97,
            "reasoning": "Trauma surge expected tonight",
            "confidence": 0.9,
        })

        outcome = process_stock_alert(ctx, StockAlert(hospital_id=hospital.id, blood_type="B-", current_units=2))

        assert outcome.request.urgency == "critical"
        assert outcome.request.priority_score == 97
        assert outcome.request.search_radius_km == 20
        decision = ctx.repos.decisions.get(outcome.decision_id).decision
        assert decision.source == "reasoning"
        assert decision.confidence == 0.9

    def test_malformed_reasoning_reply_falls_back(self, ctx, reasoning, hospital):
        reasoning.reason.return_value = ReasoningOutcome.succeeded({"urgency": "apocalyptic"})

        outcome = process_stock_alert(ctx, StockAlert(hospital_id=hospital.id, blood_type="O-", current_units=0))

        assert outcome.request.urgency == "critical"
        assert outcome.request.priority_score == 100

    def test_unknown_blood_type(self, ctx, hospital):
        with pytest.raises(ValidationError):
            process_stock_alert(ctx, StockAlert(hospital_id=hospital.id, blood_type="C+", current_units=0))

    def test_unknown_hospital(self, ctx):
        with pytest.raises(NotFoundError):
            process_stock_alert(ctx, StockAlert(hospital_id="nope", blood_type="O+", current_units=0))

    def test_unapproved_hospital(self, ctx, repos):
        pending = Hospital(name="New Clinic", status="pending", latitude=1.0, longitude=1.0)
        repos.hospitals.add(pending)
        with pytest.raises(ValidationError):
            process_stock_alert(ctx, StockAlert(hospital_id=pending.id, blood_type="O+", current_units=0))


class TestAutoAlert:

    @pytest.fixture
    def threshold(self, repos, hospital):
        record = InventoryThreshold(hospital_id=hospital.id, blood_type="A+", minimum_required=10)
        repos.thresholds.add(record)
        return record

    def test_no_threshold(self, ctx, hospital):
        result = check_inventory_and_auto_alert(ctx, hospital.id, "AB+")
        assert not result.created
        assert result.reason == "No threshold configured"

    def test_above_critical_level(self, ctx, hospital, threshold, make_unit):
        make_unit(hospital.id, blood_type="A+", units=5)
        result = check_inventory_and_auto_alert(ctx, hospital.id, "A+")
        assert not result.created
        assert result.current_units == 5

    @pytest.mark.parametrize("units,urgency", [(1, "critical"), (2, "high"), (3, "medium")])
    def test_urgency_from_percentage(self, ctx, hospital, threshold, make_unit, units, urgency):
        make_unit(hospital.id, blood_type="A+", units=units)

        result = check_inventory_and_auto_alert(ctx, hospital.id, "A+")

        assert result.created
        assert result.request.urgency == urgency
        assert result.request.units_needed == 10 - units
        assert result.request.auto_detected

    def test_recent_alert_deduplicated(self, ctx, hospital, threshold, make_unit):
        make_unit(hospital.id, blood_type="A+", units=1)
        assert check_inventory_and_auto_alert(ctx, hospital.id, "A+").created

        second = check_inventory_and_auto_alert(ctx, hospital.id, "A+")
        assert not second.created
        assert second.reason == "Recent alert already exists"

    def test_old_alert_does_not_block(self, ctx, clock, hospital, threshold, make_unit):
        make_unit(hospital.id, blood_type="A+", units=1, expires_in_days=30)
        assert check_inventory_and_auto_alert(ctx, hospital.id, "A+").created

        clock.advance(hours=5)
        assert check_inventory_and_auto_alert(ctx, hospital.id, "A+").created

    def test_monitor_all_hospitals(self, ctx, repos, hospital, threshold, make_unit):
        repos.thresholds.add(InventoryThreshold(hospital_id=hospital.id, blood_type="O+", minimum_required=4))
        make_unit(hospital.id, blood_type="A+", units=1)
        make_unit(hospital.id, blood_type="O+", units=20)

        summary = monitor_all_hospitals(ctx)

        assert summary == {"checked": 2, "alerts_created": 1, "errors": 0}
