"""
Donor Response Link Tests
"""

from datetime import timedelta

from agents.tools.tokens import mint_token
from haemo_core.domain import utcnow


def alert_link(agent_context, donor_id: str, choice: str = "accept") -> str:
    alert = [n for n in agent_context.notifier.sent_to(donor_id) if n.kind == "donor_alert"][-1]
    return alert.links[choice]


class TestRespondLink:

    def test_accept_without_api_key(self, client, agent_context, open_request):
        response = client.get(alert_link(agent_context, "D001"))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "accepted"
        assert data["eta_minutes"] > 0
        assert data["message"].startswith("Thank you for accepting!")

        details = [n for n in agent_context.notifier.sent_to("D001") if n.kind == "hospital_details"]
        assert len(details) == 1

    def test_decline(self, client, agent_context, open_request):
        response = client.get(alert_link(agent_context, "D002", "decline"))

        assert response.status_code == 200
        assert response.json()["status"] == "declined"
        assert response.json()["eta_minutes"] is None

    def test_link_only_works_once(self, client, agent_context, open_request):
        link = alert_link(agent_context, "D001")
        client.get(link)

        again = client.get(link)
        assert again.status_code == 404
        assert again.json()["error_code"] == "HF4004"

    def test_form_post(self, client, agent_context, open_request):
        token = agent_context.repos.responses.find(open_request["id"], "D002").token

        response = client.post("/api/v1/donor/respond", json={"token": token, "status": "accept"})
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

    def test_malformed_token(self, client):
        response = client.get("/api/v1/donor/respond", params={"token": "garbage", "status": "accept"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "HF4002"

    def test_expired_token(self, client, open_request):
        token = mint_token("D001", open_request["id"], utcnow() - timedelta(hours=5))

        response = client.get("/api/v1/donor/respond", params={"token": token, "status": "accept"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "HF4003"
        assert response.json()["details"]["age_ms"] >= 5 * 3600 * 1000

    def test_invalid_status(self, client, agent_context, open_request):
        token = agent_context.repos.responses.find(open_request["id"], "D001").token

        response = client.get("/api/v1/donor/respond", params={"token": token, "status": "maybe"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "HF4001"


class TestDonorFlow:

    def test_accept_select_confirm(self, client, headers, agent_context, open_request):
        request_id = open_request["id"]

        client.get(alert_link(agent_context, "D002"))
        client.get(alert_link(agent_context, "D001"))
        agent_context.tasks.drain()

        workflow = agent_context.repos.workflows.get(request_id)
        assert workflow.status == "matching"
        assert workflow.current_step == "donor_matched"
        assert workflow.metadata["matched_donor_id"] in ("D001", "D002")
        selected = workflow.metadata["matched_donor_id"]

        response = client.post(
            "/api/v1/agents/coordinator",
            json={"action": "confirm_arrival", "request_id": request_id, "donor_id": selected},
            headers=headers,
        )
        assert response.status_code == 200
        assert agent_context.repos.requests.get(request_id).status == "fulfilled"

    def test_no_show_then_backup(self, client, headers, agent_context, open_request):
        request_id = open_request["id"]
        client.get(alert_link(agent_context, "D001"))
        agent_context.tasks.drain()
        client.get(alert_link(agent_context, "D002"))
        agent_context.tasks.drain()

        selected = agent_context.repos.workflows.get(request_id).metadata["matched_donor_id"]
        assert selected == "D001"

        response = client.post(
            "/api/v1/agents/coordinator",
            json={"action": "mark_no_show", "request_id": request_id, "donor_id": "D001"},
            headers=headers,
        )
        assert response.status_code == 200

        reselect = client.post(
            "/api/v1/agents/coordinator",
            json={"action": "select_optimal_match", "request_id": request_id},
            headers=headers,
        )
        assert reselect.json()["result"]["selected_donor_id"] == "D002"
