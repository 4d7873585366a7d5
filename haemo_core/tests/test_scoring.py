"""
Tests for the Scoring Engine
"""

import unittest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from haemo_core.domain import Donor, Hospital, InventoryUnit
from haemo_core.models.scoring import (
    ResponseHistory,
    distance_score,
    estimate_travel_minutes,
    expiry_score,
    feasibility_score,
    health_score,
    history_score,
    match_health_score,
    match_score,
    quantity_score,
    reliability_rate,
    responsiveness_score,
    score_donor,
    score_inventory_unit,
    time_of_day_score,
)


class TestDonorScore(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        """Set up test fixtures"""
        cls.now = datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)
        cls.donor = Donor(
            first_name="Asha",
            last_name="Rao",
            blood_group="O-",
            gender="female",
            date_of_birth=date(1990, 1, 1),
            weight=60,
            bmi=22.0,
            hemoglobin=13.5,
            never_donated=False,
            last_donation=date(2025, 1, 1),
            status="approved",
        )

    def test_01_distance_bounds(self):
        """Distance sub-score is 100 at the hospital and 0 at the radius edge"""
        self.assertEqual(distance_score(0, 50), 100)
        self.assertEqual(distance_score(50, 50), 0)
        self.assertEqual(distance_score(80, 50), 0)

    def test_02_distance_monotonic(self):
        """Moving closer never lowers the distance sub-score"""
        scores = [distance_score(d, 35) for d in (30, 20, 10, 5, 0)]
        self.assertEqual(scores, sorted(scores))

    def test_03_history_bands(self):
        self.assertEqual(history_score(30), 0)
        self.assertEqual(history_score(90), 100)
        self.assertEqual(history_score(200), 80)
        self.assertEqual(history_score(500), 60)
        self.assertEqual(history_score(1000), 40)

    def test_04_responsiveness(self):
        """New donors get a neutral score; fast reliable donors max out"""
        self.assertEqual(responsiveness_score(0, 0, 10), 50)
        self.assertEqual(responsiveness_score(10, 10, 0), 100)
        self.assertAlmostEqual(responsiveness_score(10, 5, 100), 55)

    def test_05_time_of_day(self):
        self.assertEqual(time_of_day_score("critical", 3), 100)
        self.assertEqual(time_of_day_score("medium", 10), 100)
        self.assertEqual(time_of_day_score("medium", 12), 80)
        self.assertEqual(time_of_day_score("medium", 23), 40)

    def test_06_health(self):
        self.assertEqual(health_score(14.5, 22, False, None), 100)
        self.assertEqual(health_score(None, None, True, "aspirin"), 24 + 18 + 10 + 12)

    def test_07_composite_rounded(self):
        scores = score_donor(self.donor, 7.0, 35, "high", self.now, ResponseHistory())
        self.assertEqual(scores.distance, 80.0)
        # 152 days since last donation falls in the 90-180 band
        self.assertEqual(scores.history, 100.0)
        self.assertEqual(scores.final, round(scores.final, 1))
        self.assertGreater(scores.final, 0)

    def test_08_time_of_day_uses_local_clock(self):
        """The business-hour band is read from the wall clock passed in, not UTC"""
        local_now = datetime(2025, 6, 2, 4, 0, tzinfo=timezone.utc).astimezone(ZoneInfo("Asia/Kolkata"))
        self.assertEqual(local_now.hour, 9)
        scores = score_donor(self.donor, 7.0, 35, "medium", local_now, ResponseHistory())
        self.assertEqual(scores.time_of_day, 100.0)


class TestInventoryScore(unittest.TestCase):

    def test_01_expiry_prefers_older_units(self):
        self.assertEqual(expiry_score(10), 100)
        self.assertEqual(expiry_score(20), 80)
        self.assertEqual(expiry_score(40), 60)
        self.assertEqual(expiry_score(60), 40)

    def test_01b_expiry_counts_whole_days(self):
        """A unit 14.5 days out sits in the 14-day band, as the prompt reports it"""
        now = datetime(2025, 6, 2, tzinfo=timezone.utc)
        unit = InventoryUnit(hospital_id="h2", blood_type="O-", units=10, expiry_date=now + timedelta(days=14, hours=12))
        hospital = Hospital(id="h2", name="City Blood Bank")
        self.assertEqual((unit.expiry_date - now).days, 14)
        self.assertEqual(score_inventory_unit(unit, hospital, 20.0, 2, now).expiry, 100)

    def test_02_quantity_uses_surplus_above_safety_stock(self):
        self.assertEqual(quantity_score(6, 2), 0)
        self.assertEqual(quantity_score(8, 2), 50)
        self.assertEqual(quantity_score(50, 2), 100)

    def test_03_feasibility(self):
        self.assertEqual(feasibility_score(True, True, True), 100)
        self.assertEqual(feasibility_score(True, False, True), 70)
        self.assertEqual(feasibility_score(False, True, True), 50)

    def test_04_composite(self):
        now = datetime(2025, 6, 2, tzinfo=timezone.utc)
        unit = InventoryUnit(hospital_id="h2", blood_type="O-", units=10, expiry_date=now + timedelta(days=10))
        hospital = Hospital(id="h2", name="City Blood Bank")
        scores = score_inventory_unit(unit, hospital, 20.0, 2, now)
        # proximity 90, expiry 100, quantity 100, feasibility 100
        self.assertAlmostEqual(scores.final, 96.0)


class TestMatchScore(unittest.TestCase):

    def test_01_worked_example(self):
        """eta 30, 5 km, reliability 0.8, health 90 -> 30 + 27 + 16 + 9"""
        self.assertAlmostEqual(match_score(30, 5, 0.8, 90), 82.0, delta=0.1)

    def test_02_travel_estimate(self):
        self.assertEqual(estimate_travel_minutes(0), 25)
        self.assertEqual(estimate_travel_minutes(10), 40)
        self.assertEqual(estimate_travel_minutes(10.1), 41)

    def test_03_reliability_default(self):
        self.assertEqual(reliability_rate(0, 0), 0.5)
        self.assertEqual(reliability_rate(3, 4), 0.75)

    def test_04_match_health(self):
        self.assertEqual(match_health_score(None, "male"), 70)
        self.assertEqual(match_health_score(13.5, "male"), 80)
        self.assertEqual(match_health_score(13.5, "female"), 100)


if __name__ == '__main__':
    unittest.main()
