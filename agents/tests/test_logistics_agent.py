"""
Unit Tests for the Logistics Agent
"""

import pytest
from datetime import timedelta

from agents.nodes import locks
from agents.nodes.inventory import process_inventory_search
from agents.runtime import build_context
from agents.nodes.logistics import (
    calculate_donor_eta,
    donor_eta_options,
    plan_transport,
    recommended_mode,
    select_transport_method,
    traffic_multiplier,
    transport_eta_minutes,
    update_transport_status,
)
from haemo_core.domain import DonorCandidateResponse, Hospital, TransportRequest
from haemo_core.event_log import EventType
from haemo_core.exceptions import ColdChainViolationError, NotFoundError, ValidationError
from haemo_core.utils.reasoning import ReasoningOutcome


@pytest.fixture
def transport(ctx, blood_bank, make_unit, raise_request):
    """Inventory transport from the partner bank 5 km away"""
    make_unit(blood_bank.id)
    request = raise_request(urgency="high")
    result = process_inventory_search(ctx, request.id)
    return ctx.repos.transports.get(result.transport_id)


@pytest.fixture
def bangalore_ctx(repos, reasoning, notifier, clock):
    """Same stores and clock, hospitals on India Standard Time"""
    return build_context(repos, reasoning=reasoning, notifier=notifier, clock=clock, local_timezone="Asia/Kolkata")


class TestRules:

    @pytest.mark.parametrize("hour,expected", [(8, 1.5), (17, 1.5), (9, 1.0), (12, 1.0), (16, 1.0), (22, 0.8), (3, 0.8)])
    def test_traffic_multiplier(self, hour, expected):
        assert traffic_multiplier(hour) == expected

    @pytest.mark.parametrize("distance,urgency,expected", [
        (10, "critical", "ambulance"),
        (10, "high", "courier"),
        (30, "critical", "courier"),
        (30, "medium", "scheduled"),
        (80, "critical", "scheduled"),
    ])
    def test_method(self, distance, urgency, expected):
        assert select_transport_method(distance, urgency) == expected

    def test_scheduled_adds_batch_delay(self):
        assert transport_eta_minutes(60, 1.0, "scheduled") == 132
        assert transport_eta_minutes(60, 1.0, "ambulance") == 42

    def test_donor_modes(self):
        options = donor_eta_options(10, hour=8)
        assert options["walking"] == 145
        assert options["car"] == 48
        assert recommended_mode(1.2) == "walking"
        assert recommended_mode(4) == "bicycle"
        assert recommended_mode(8) == "public_transport"
        assert recommended_mode(25) == "car"


class TestPlanTransport:

    def test_plan_updates_transport(self, ctx, repos, clock, transport):
        plan = plan_transport(ctx, transport.id)

        assert plan.method == "courier"
        assert plan.distance_km == 5.0
        assert plan.traffic_multiplier == 1.0
        assert plan.eta_minutes == 8
        assert plan.pickup_time == clock() + timedelta(minutes=15)
        assert plan.estimated_delivery == clock() + timedelta(minutes=23)
        assert plan.cold_chain_compliant
        assert plan.map_url.startswith("https://www.google.com/maps/dir/")

        stored = repos.transports.get(transport.id)
        assert stored.transport_method == "courier"
        assert stored.eta == plan.estimated_delivery

        events = [e for e in ctx.events.for_request(transport.request_id) if e.type == EventType.LOGISTICS_PLAN]
        assert events[0].payload["cold_chain_compliant"] is True

    def test_rush_hour(self, ctx, clock, transport):
        clock.current = clock.current.replace(hour=8)
        assert plan_transport(ctx, transport.id).eta_minutes == 12

    def test_rush_hour_read_in_local_time(self, bangalore_ctx, clock, transport):
        # 02:30 UTC is 08:00 in Bangalore
        clock.current = clock.current.replace(hour=2, minute=30)

        plan = plan_transport(bangalore_ctx, transport.id)

        assert plan.traffic_multiplier == 1.5
        assert plan.eta_minutes == 12

    def test_advised_eta_never_below_rule_estimate(self, ctx, reasoning, transport):
        reasoning.reason.return_value = ReasoningOutcome.succeeded({
            "method": "courier",
            "eta_minutes": 3,
            "reasoning": "Roads are clear",
            "confidence": 0.7,
        })

        plan = plan_transport(ctx, transport.id)

        assert plan.eta_minutes == 8
        assert plan.source == "reasoning"

    def test_cold_chain_violation(self, ctx, repos, hospital, raise_request):
        remote = Hospital(name="Hill Station Hospital", latitude=hospital.latitude + 2.7, longitude=hospital.longitude)
        repos.hospitals.add(remote)
        request = raise_request(urgency="high")
        far_transport = TransportRequest(
            request_id=request.id,
            from_hospital_id=remote.id,
            to_hospital_id=hospital.id,
            blood_type="O+",
            units=2,
        )
        repos.transports.add(far_transport)

        with pytest.raises(ColdChainViolationError) as exc_info:
            plan_transport(ctx, far_transport.id)

        assert exc_info.value.details["eta_minutes"] > 360
        stored = repos.transports.get(far_transport.id)
        assert stored.escalated
        assert stored.status == "pending"
        assert repos.workflows.get(request.id).metadata["escalation"] == "cold_chain_violation"
        assert repos.decisions.query(request_id=request.id, event_type="cold_chain_violation")

    def test_unknown_transport(self, ctx):
        with pytest.raises(NotFoundError):
            plan_transport(ctx, "missing")


class TestDonorEta:

    def test_fresh_estimate(self, ctx, repos, hospital, make_donor):
        donor = make_donor(lat_offset=0.01)

        eta = calculate_donor_eta(ctx, donor.id, hospital.id)

        assert eta.distance_km == 1.1
        assert eta.recommended_mode == "walking"
        assert eta.recommended_eta == 39
        assert eta.eta_options["bicycle"] == 30
        assert repos.decisions.query(event_type="donor_eta_calculation")

    def test_car_estimate_uses_local_rush_hour(self, ctx, bangalore_ctx, clock, hospital, make_donor):
        donor = make_donor(lat_offset=0.01)
        clock.current = clock.current.replace(hour=2, minute=30)

        assert calculate_donor_eta(ctx, donor.id, hospital.id).eta_options["car"] == 27
        assert calculate_donor_eta(bangalore_ctx, donor.id, hospital.id).eta_options["car"] == 28

    def test_accepted_donor_gets_remaining_time(self, ctx, repos, clock, hospital, make_donor, raise_request):
        donor = make_donor(lat_offset=0.01)
        request = raise_request()
        repos.responses.add(DonorCandidateResponse(
            donor_id=donor.id,
            request_id=request.id,
            notified_at=clock(),
            status="accepted",
            distance_km=1.1,
            expected_arrival=clock() + timedelta(minutes=39),
        ))

        clock.advance(minutes=10)
        first = calculate_donor_eta(ctx, donor.id, hospital.id, request.id)
        second = calculate_donor_eta(ctx, donor.id, hospital.id, request.id)

        assert first.recommended_mode == "accepted"
        assert first.recommended_eta == 29
        assert second.recommended_eta == 29
        assert set(first.eta_options.values()) == {29}

    def test_overdue_arrival_is_zero(self, ctx, repos, clock, hospital, make_donor, raise_request):
        donor = make_donor()
        request = raise_request()
        repos.responses.add(DonorCandidateResponse(
            donor_id=donor.id,
            request_id=request.id,
            notified_at=clock(),
            status="accepted",
            expected_arrival=clock() + timedelta(minutes=20),
        ))

        clock.advance(hours=1)
        assert calculate_donor_eta(ctx, donor.id, hospital.id, request.id).recommended_eta == 0

    def test_donor_without_coordinates(self, ctx, hospital, make_donor):
        donor = make_donor(latitude=None, longitude=None)
        with pytest.raises(ValidationError):
            calculate_donor_eta(ctx, donor.id, hospital.id)


class TestTransportStatus:

    def test_delivery_fulfills_request(self, ctx, repos, transport):
        update_transport_status(ctx, transport.id, "picked_up")
        update_transport_status(ctx, transport.id, "delivered")

        request = repos.requests.get(transport.request_id)
        assert request.status == "fulfilled"
        assert request.fulfillment_source == "inventory"
        assert repos.workflows.get(transport.request_id).status == "fulfilled"
        assert repos.transports.get(transport.id).delivery_time is not None

    def test_delivery_drops_selection_lock(self, ctx, transport):
        locks.selection_lock(transport.request_id)

        update_transport_status(ctx, transport.id, "delivered")

        assert transport.request_id not in locks._selection_locks

    def test_invalid_status(self, ctx, transport):
        with pytest.raises(ValidationError):
            update_transport_status(ctx, transport.id, "teleported")
