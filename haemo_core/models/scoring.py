"""
Scoring Engine

Deterministic weighted scores used to rank donors before notification,
inventory units before reservation, and accepted donors before selection.
Every function is pure: the clock is passed in, nothing is cached.
"""

import math
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from ..config import (
    DONOR_SCORING_CONFIG,
    INVENTORY_SCORING_CONFIG,
    MATCH_SCORING_CONFIG,
)
from .geo import round_half_up


class DonorScores(BaseModel):
    distance: float
    history: float
    responsiveness: float
    time_of_day: float
    health: float
    final: float


class InventoryScores(BaseModel):
    proximity: float
    expiry: float
    quantity: float
    feasibility: float
    final: float


class ResponseHistory(BaseModel):
    """Aggregate of a donor's past alert responses"""
    total_alerts: int = 0
    accepted: int = 0
    avg_response_minutes: float = DONOR_SCORING_CONFIG["default_avg_response_minutes"]


# ============================================
# Donor score (pre-notification)
# ============================================

def distance_score(distance_km: float, max_radius_km: float) -> float:
    """Closer donors score higher; 0 at the edge of the search radius"""
    return max(0.0, 100 - (distance_km / max_radius_km) * 100)


def history_score(days_since_last_donation: float) -> float:
    """90-180 days since the last donation is the sweet spot"""
    if 90 <= days_since_last_donation <= 180:
        return 100
    if 180 < days_since_last_donation <= 365:
        return 80
    if 365 < days_since_last_donation <= 730:
        return 60
    if days_since_last_donation > 730:
        return 40
    return 0


def responsiveness_score(total_alerts: int, accepted: int, avg_response_minutes: float) -> float:
    if total_alerts == 0:
        return DONOR_SCORING_CONFIG["new_donor_responsiveness"]

    rate_points = (accepted / total_alerts) * 70
    speed_bonus = max(0.0, min(30.0, 30 - avg_response_minutes / 10))
    return rate_points + speed_bonus


def time_of_day_score(urgency: str, hour: int) -> float:
    if urgency == "critical":
        return 100
    if 9 <= hour < 11 or 14 <= hour < 17:
        return 100
    if 11 <= hour < 14 or 17 <= hour < 20:
        return 80
    return 40


def health_score(
    hemoglobin: Optional[float],
    bmi: Optional[float],
    recent_vaccinations: bool,
    medications: Optional[str],
) -> float:
    """Hemoglobin 40, BMI 30, vaccinations 15, medications 15"""
    score = 0

    if hemoglobin is not None and hemoglobin > 14:
        score += 40
    elif hemoglobin is not None and 13 <= hemoglobin <= 14:
        score += 32
    else:
        score += 24

    if bmi is not None and 18.5 <= bmi <= 24.9:
        score += 30
    elif bmi is not None and 25 <= bmi <= 29.9:
        score += 24
    else:
        score += 18

    score += 10 if recent_vaccinations else 15

    if not medications or medications.strip().lower() == "none":
        score += 15
    else:
        score += 12

    return score


def days_since(last_donation: Optional[date], now: datetime) -> float:
    if last_donation is None:
        return DONOR_SCORING_CONFIG["never_donated_days"]
    last = datetime.combine(last_donation, datetime.min.time(), tzinfo=now.tzinfo)
    return (now - last).total_seconds() / 86400


def score_donor(
    donor,
    distance_km: float,
    max_radius_km: float,
    urgency: str,
    now: datetime,
    history: Optional[ResponseHistory] = None,
) -> DonorScores:
    """
    Composite donor score; sub-scores and final rounded to one decimal.

    `now` must be in the hospitals' local timezone: the time-of-day band reads its hour.
    """
    history = history or ResponseHistory()
    weights = DONOR_SCORING_CONFIG["weights"]

    distance = distance_score(distance_km, max_radius_km)
    history_pts = history_score(days_since(donor.last_donation, now))
    responsiveness = responsiveness_score(
        history.total_alerts, history.accepted, history.avg_response_minutes
    )
    time_pts = time_of_day_score(urgency, now.hour)
    health = health_score(donor.hemoglobin, donor.bmi, donor.recent_vaccinations, donor.medications)

    final = (
        distance * weights["distance"]
        + history_pts * weights["history"]
        + responsiveness * weights["responsiveness"]
        + time_pts * weights["time_of_day"]
        + health * weights["health"]
    )

    return DonorScores(
        distance=round_half_up(distance, 1),
        history=round_half_up(history_pts, 1),
        responsiveness=round_half_up(responsiveness, 1),
        time_of_day=round_half_up(time_pts, 1),
        health=round_half_up(health, 1),
        final=round_half_up(final, 1),
    )


# ============================================
# Inventory-unit score
# ============================================

def proximity_score(distance_km: float) -> float:
    return max(0.0, 100 - (distance_km / INVENTORY_SCORING_CONFIG["max_distance_km"]) * 100)


def expiry_score(days_until_expiry: int) -> float:
    """Units closer to expiry are used first; partial days do not count"""
    if days_until_expiry <= 14:
        return 100
    if days_until_expiry <= 30:
        return 80
    if days_until_expiry <= 45:
        return 60
    return 40


def quantity_score(units_available: int, units_needed: int) -> float:
    """Only surplus beyond the facility's own safety stock counts"""
    safety_stock = INVENTORY_SCORING_CONFIG["daily_usage_units"] * INVENTORY_SCORING_CONFIG["safety_days"]
    surplus = units_available - safety_stock
    if surplus <= 0:
        return 0
    return min(100.0, (surplus / units_needed) * 50)


def feasibility_score(network_participation: bool, cold_storage: bool, temperature_standards: bool) -> float:
    if not network_participation:
        return 50
    if not cold_storage or not temperature_standards:
        return 70
    return 100


def score_inventory_unit(unit, hospital, distance_km: float, units_needed: int, now: datetime) -> InventoryScores:
    weights = INVENTORY_SCORING_CONFIG["weights"]
    days_left = (unit.expiry_date - now).days

    proximity = proximity_score(distance_km)
    expiry = expiry_score(days_left)
    quantity = quantity_score(unit.units, units_needed)
    feasibility = feasibility_score(
        hospital.network_participation, hospital.cold_storage, hospital.temperature_standards
    )

    final = (
        proximity * weights["proximity"]
        + expiry * weights["expiry"]
        + quantity * weights["quantity"]
        + feasibility * weights["feasibility"]
    )

    return InventoryScores(
        proximity=proximity,
        expiry=expiry,
        quantity=quantity,
        feasibility=feasibility,
        final=round_half_up(final, 2),
    )


# ============================================
# Match score (post-acceptance)
# ============================================

def match_score(eta_minutes: float, distance_km: float, reliability_rate: float, health: float) -> float:
    """
    Rank donors who already accepted.

    >>> match_score(30, 5, 0.8, 90)
    82.0
    """
    weights = MATCH_SCORING_CONFIG["weights"]
    eta_pts = max(0.0, 100 - (eta_minutes / MATCH_SCORING_CONFIG["max_eta_minutes"]) * 100)
    distance_pts = max(0.0, 100 - (distance_km / MATCH_SCORING_CONFIG["max_distance_km"]) * 100)
    reliability_pts = reliability_rate * 100

    total = (
        eta_pts * weights["eta"]
        + distance_pts * weights["distance"]
        + reliability_pts * weights["reliability"]
        + health * weights["health"]
    )
    return round_half_up(total, 2)


def estimate_travel_minutes(distance_km: float) -> int:
    """Driving time at average speed plus preparation and check-in"""
    return math.ceil(
        distance_km / MATCH_SCORING_CONFIG["travel_speed_kmh"] * 60 + MATCH_SCORING_CONFIG["prep_minutes"]
    )


def reliability_rate(confirmed_donations: int, answered_alerts: int) -> float:
    if answered_alerts == 0:
        return MATCH_SCORING_CONFIG["default_reliability"]
    return confirmed_donations / answered_alerts


def match_health_score(hemoglobin: Optional[float], gender: str) -> float:
    """100 for healthy levels, 80 when below the gender reference, 70 when unknown"""
    if hemoglobin is None:
        return 70
    if gender == "male" and hemoglobin < 14.0:
        return 80
    if gender == "female" and hemoglobin < 13.0:
        return 80
    return 100
