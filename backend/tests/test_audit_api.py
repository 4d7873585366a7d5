"""
Alert Closure and Audit Log Endpoint Tests
"""

from datetime import timedelta

from haemo_core.domain import InventoryUnit, utcnow


class TestCloseAlert:

    def test_close(self, client, headers, agent_context, open_request):
        response = client.post(
            f"/api/v1/alerts/{open_request['id']}/close",
            json={"fulfillment_source": "other", "notes": "Covered by walk-in donors"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["result"]["status"] == "closed"
        assert agent_context.repos.requests.get(open_request["id"]).status == "closed"
        assert agent_context.repos.workflows.get(open_request["id"]).current_step == "closed_by_hospital"

    def test_close_releases_reserved_units(self, client, headers, agent_context, sample_hospital_id):
        unit = InventoryUnit(hospital_id="H002", blood_type="O-", units=6, expiry_date=utcnow() + timedelta(days=20))
        agent_context.repos.inventory.add(unit)
        request = client.post(
            "/api/v1/agents/hospital",
            json={"hospital_id": sample_hospital_id, "blood_type": "O-", "current_units": 0, "units_needed": 2},
            headers=headers,
        ).json()["result"]["request"]
        client.post("/api/v1/agents/inventory", json={"request_id": request["id"]}, headers=headers)
        assert agent_context.repos.inventory.get(unit.id).reserved_for == request["id"]

        response = client.post(f"/api/v1/alerts/{request['id']}/close", json={}, headers=headers)

        assert response.json()["result"]["released_units"] == [unit.id]
        assert not agent_context.repos.inventory.get(unit.id).reserved

    def test_close_unknown(self, client, headers):
        response = client.post("/api/v1/alerts/missing/close", json={}, headers=headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "HF4004"

    def test_requires_api_key(self, client, open_request):
        response = client.post(f"/api/v1/alerts/{open_request['id']}/close", json={})
        assert response.status_code == 403


class TestAgentLogs:

    def test_request_trail(self, client, headers, open_request):
        response = client.get(f"/api/v1/agent-logs/{open_request['id']}", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["request"]["blood_type"] == "O-"
        assert data["workflow"]["status"] == "donors_notified"

        event_types = {e["type"] for e in data["events"]}
        assert "shortage.request.v1" in event_types
        assert "donor.candidate.v1" in event_types

        agents = {d["agent_type"] for d in data["decisions"]}
        assert {"hospital", "donor"} <= agents

    def test_unknown_request(self, client, headers):
        response = client.get("/api/v1/agent-logs/missing", headers=headers)
        assert response.status_code == 404

    def test_decision_filters(self, client, headers, open_request):
        response = client.get("/api/v1/agents/logs", params={"agent_type": "hospital"}, headers=headers)

        data = response.json()
        assert data["count"] == 1
        assert data["decisions"][0]["event_type"] == "shortage_detection"

    def test_decision_limit_newest_first(self, client, headers, open_request):
        everything = client.get("/api/v1/agents/logs", headers=headers).json()
        latest = client.get("/api/v1/agents/logs", params={"limit": 1}, headers=headers).json()

        assert everything["count"] > 1
        assert latest["count"] == 1
        assert latest["decisions"][0]["id"] == everything["decisions"][0]["id"]
