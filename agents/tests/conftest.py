"""
Pytest Configuration for Agent Tests
Shared fixtures: in-memory repositories, a frozen clock and seeded hospitals
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

from agents.nodes.hospital import StockAlert, process_stock_alert
from agents.runtime import build_context
from agents.tools.notifier import LoggingNotifier
from haemo_core.domain import Donor, Hospital, InventoryUnit
from haemo_core.exceptions import ReasoningError
from haemo_core.store.memory import memory_repositories
from haemo_core.utils.reasoning import ReasoningClient, ReasoningOutcome

# Monday, mid-morning: traffic multiplier 1.0
NOW = datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)

HOSPITAL_LAT, HOSPITAL_LNG = 12.9716, 77.5946


class FrozenClock:
    """Callable clock that only moves when a test says so"""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def repos():
    return memory_repositories()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def reasoning():
    """Reasoning client whose replies each test sets; fails by default"""
    client = MagicMock(spec=ReasoningClient)
    client.reason.return_value = ReasoningOutcome.failed(ReasoningError("not configured in test"))
    return client


@pytest.fixture
def ctx(repos, notifier, reasoning, clock):
    return build_context(
        repos,
        reasoning=reasoning,
        notifier=notifier,
        clock=clock,
        base_url="http://haemoflow.test",
    )


@pytest.fixture
def hospital(repos) -> Hospital:
    """Requesting hospital"""
    record = Hospital(
        name="City General Hospital",
        address="1 MG Road",
        phone="080-2222-1111",
        contact_person="Dr. Rao",
        latitude=HOSPITAL_LAT,
        longitude=HOSPITAL_LNG,
    )
    repos.hospitals.add(record)
    return record


@pytest.fixture
def blood_bank(repos) -> Hospital:
    """Partner facility 5 km north of the requesting hospital"""
    record = Hospital(
        name="Northside Blood Bank",
        address="22 Hebbal Ring Road",
        latitude=HOSPITAL_LAT + 0.045,
        longitude=HOSPITAL_LNG,
    )
    repos.hospitals.add(record)
    return record


@pytest.fixture
def make_donor(repos):
    """Factory for approved, eligible donors; lat_offset moves them north of the hospital"""

    def _make(lat_offset: float = 0.01, **overrides) -> Donor:
        fields = dict(
            first_name="Asha",
            last_name="Kumar",
            email="asha@example.com",
            blood_group="O+",
            gender="male",
            date_of_birth=date(1990, 1, 15),
            weight=72,
            bmi=23.1,
            hemoglobin=14.8,
            latitude=HOSPITAL_LAT + lat_offset,
            longitude=HOSPITAL_LNG,
            status="approved",
        )
        fields.update(overrides)
        donor = Donor(**fields)
        repos.donors.add(donor)
        return donor

    return _make


@pytest.fixture
def make_unit(repos, clock):
    def _make(hospital_id: str, blood_type: str = "O+", units: int = 12, expires_in_days: int = 20) -> InventoryUnit:
        unit = InventoryUnit(
            hospital_id=hospital_id,
            blood_type=blood_type,
            units=units,
            expiry_date=clock() + timedelta(days=expires_in_days),
        )
        repos.inventory.add(unit)
        return unit

    return _make


@pytest.fixture
def raise_request(ctx, hospital):
    """Create a shortage request through the hospital agent and return it"""

    def _raise(blood_type: str = "O+", urgency: str = "high", units_needed: int = 2, current_units: int = 1):
        outcome = process_stock_alert(ctx, StockAlert(
            hospital_id=hospital.id,
            blood_type=blood_type,
            current_units=current_units,
            units_needed=units_needed,
            urgency=urgency,
        ))
        return outcome.request

    return _raise
