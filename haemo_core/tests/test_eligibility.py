"""
Tests for donor eligibility criteria
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from haemo_core.domain import Donor
from haemo_core.models.eligibility import (
    check_donor_eligibility,
    exact_age,
    is_hard_criterion,
    is_matchable,
)

TODAY = date(2025, 6, 2)
NOW = datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)


def make_donor(**overrides) -> Donor:
    fields = dict(
        first_name="Ravi",
        last_name="Kumar",
        blood_group="B+",
        gender="male",
        date_of_birth=date(1992, 3, 14),
        weight=72,
        bmi=23.4,
        hemoglobin=14.2,
        status="approved",
    )
    fields.update(overrides)
    return Donor(**fields)


def test_healthy_donor_passes():
    result = check_donor_eligibility(make_donor(), TODAY)
    assert result.passed
    assert result.failed_criteria == []
    # Never donated, so no interval criterion
    assert "Donation Interval" not in [c.criterion for c in result.all_criteria]


def test_low_hemoglobin_is_hard_failure():
    result = check_donor_eligibility(make_donor(hemoglobin=11.0), TODAY)
    assert not result.passed
    assert result.failed_names == ["Hemoglobin"]
    assert [c.criterion for c in result.hard_failures] == ["Hemoglobin"]


def test_low_bmi_is_soft_failure():
    result = check_donor_eligibility(make_donor(bmi=18.0), TODAY)
    assert result.failed_names == ["BMI"]
    assert result.hard_failures == []


def test_positive_test_fails():
    result = check_donor_eligibility(make_donor(malaria_test="positive"), TODAY)
    assert result.failed_names == ["Malaria Test"]
    assert is_hard_criterion("Malaria Test")


def test_age_uses_year_difference():
    # Turns 18 later in 2025 but the calendar-year difference is already 18
    result = check_donor_eligibility(make_donor(date_of_birth=date(2007, 12, 1)), TODAY)
    assert result.passed


def test_donation_interval_by_gender():
    recent = dict(never_donated=False, last_donation=TODAY - timedelta(days=100))
    assert check_donor_eligibility(make_donor(**recent), TODAY).passed
    female = check_donor_eligibility(make_donor(gender="female", hemoglobin=13.1, **recent), TODAY)
    assert female.failed_names == ["Donation Interval"]


@pytest.mark.parametrize("name,hard", [
    ("Age", True),
    ("Weight", True),
    ("Hemoglobin", True),
    ("HIV Test", True),
    ("BMI", False),
    ("Donation Interval", False),
])
def test_hard_criteria(name, hard):
    assert is_hard_criterion(name) == hard


class TestMatchable:

    def test_approved_healthy_donor(self):
        assert is_matchable(make_donor(), NOW)

    def test_pending_donor_not_matchable(self):
        assert not is_matchable(make_donor(status="pending"), NOW)

    def test_suspended_donor_not_matchable(self):
        assert not is_matchable(make_donor(suspended_until=NOW + timedelta(days=3)), NOW)

    def test_exact_age_birthday_not_reached(self):
        assert exact_age(date(2007, 12, 1), TODAY) == 17
        assert not is_matchable(make_donor(date_of_birth=date(2007, 12, 1)), NOW)

    def test_female_hemoglobin_threshold(self):
        assert is_matchable(make_donor(gender="female", hemoglobin=12.6), NOW)
        assert not is_matchable(make_donor(gender="female", hemoglobin=12.4), NOW)

    def test_male_interval(self):
        assert not is_matchable(make_donor(last_donation=TODAY - timedelta(days=60)), NOW)
        assert is_matchable(make_donor(last_donation=TODAY - timedelta(days=95)), NOW)
