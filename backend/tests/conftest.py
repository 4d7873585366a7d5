"""
Pytest Configuration
Shared fixtures and test setup
"""

import pytest
from datetime import date
from fastapi.testclient import TestClient

from agents.runtime import build_context
from backend.app.database import get_agent_context
from backend.app.main import app
from haemo_core.domain import Donor, Hospital
from haemo_core.store.memory import memory_repositories


@pytest.fixture
def agent_context():
    """Fresh in-memory runtime seeded with one hospital, one partner bank and two donors"""
    ctx = build_context(memory_repositories(), base_url="http://testserver")

    ctx.repos.hospitals.add(Hospital(
        id="H001",
        name="City General Hospital",
        address="1 MG Road",
        contact_person="Dr. Rao",
        latitude=12.9716,
        longitude=77.5946,
    ))
    ctx.repos.hospitals.add(Hospital(
        id="H002",
        name="Northside Blood Bank",
        latitude=13.0166,
        longitude=77.5946,
    ))
    for donor_id, offset in (("D001", 0.01), ("D002", 0.05)):
        ctx.repos.donors.add(Donor(
            id=donor_id,
            first_name="Test",
            last_name=donor_id,
            blood_group="O-",
            gender="female",
            date_of_birth=date(1988, 3, 9),
            weight=61,
            bmi=22.4,
            hemoglobin=13.6,
            latitude=12.9716 + offset,
            longitude=77.5946,
            status="approved",
        ))
    return ctx


@pytest.fixture
def client(agent_context):
    """Test client fixture wired to the in-memory runtime"""
    app.dependency_overrides[get_agent_context] = lambda: agent_context
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_key():
    """Valid API key fixture"""
    return "dev-key-123"


@pytest.fixture
def headers(api_key):
    """Request headers with API key"""
    return {"X-API-Key": api_key}


@pytest.fixture
def sample_hospital_id():
    """Sample hospital ID for testing"""
    return "H001"


@pytest.fixture
def open_request(client, headers, agent_context, sample_hospital_id):
    """Critical O- request with both donors alerted"""
    response = client.post(
        "/api/v1/agents/hospital",
        json={"hospital_id": sample_hospital_id, "blood_type": "O-", "current_units": 0},
        headers=headers,
    )
    assert response.status_code == 200
    agent_context.tasks.drain()
    return response.json()["result"]["request"]
