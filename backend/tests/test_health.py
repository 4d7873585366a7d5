"""
Health Endpoint Tests
"""


def test_health_check(client):
    """Test basic health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data
    assert "version" in data
    assert data["pending_tasks"] == 0


def test_health_reports_queued_tasks(client, headers, agent_context):
    """A new shortage leaves a donor matching task in the queue"""
    client.post(
        "/api/v1/agents/hospital",
        json={"hospital_id": "H001", "blood_type": "A+", "current_units": 0},
        headers=headers,
    )

    assert client.get("/health").json()["pending_tasks"] == 1

    agent_context.tasks.drain()
    assert client.get("/health").json()["pending_tasks"] == 0


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"
