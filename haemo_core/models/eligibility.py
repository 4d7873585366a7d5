"""
Donor eligibility criteria

Two views of the same medical rules:
- check_donor_eligibility: the full registration screen with a human-readable
  reason per criterion (used by verification)
- is_matchable: the quick re-check run before a donor is ranked for a request
"""

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..config import ELIGIBILITY_CONFIG


class EligibilityCriterion(BaseModel):
    criterion: str
    value: Any = None
    required: str
    reason: str
    passed: bool


class EligibilityCheckResult(BaseModel):
    passed: bool
    failed_criteria: List[EligibilityCriterion] = Field(default_factory=list)
    all_criteria: List[EligibilityCriterion] = Field(default_factory=list)

    @property
    def failed_names(self) -> List[str]:
        return [c.criterion for c in self.failed_criteria]

    @property
    def hard_failures(self) -> List[EligibilityCriterion]:
        return [c for c in self.failed_criteria if is_hard_criterion(c.criterion)]


def is_negative(result: Optional[str]) -> bool:
    return bool(result) and result.strip().upper() == "NEGATIVE"


def is_hard_criterion(name: str) -> bool:
    """Age, weight, hemoglobin and every disease test can never be waived"""
    return name in ELIGIBILITY_CONFIG["hard_criteria"] or name.endswith(" Test")


def age_in_years(date_of_birth: date, today: date) -> int:
    """Calendar-year difference"""
    return today.year - date_of_birth.year


def exact_age(date_of_birth: date, today: date) -> int:
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def check_donor_eligibility(donor, today: date) -> EligibilityCheckResult:
    """Evaluate every registration criterion and collect the failures"""
    cfg = ELIGIBILITY_CONFIG
    criteria: List[EligibilityCriterion] = []

    age = age_in_years(donor.date_of_birth, today)
    criteria.append(EligibilityCriterion(
        criterion="Age",
        value=age,
        required=f"{cfg['min_age']}-{cfg['max_age']} years",
        reason=(
            f"You must be at least {cfg['min_age']} years old to donate blood"
            if age < cfg["min_age"]
            else f"Maximum donor age is {cfg['max_age']} years"
        ),
        passed=cfg["min_age"] <= age <= cfg["max_age"],
    ))

    criteria.append(EligibilityCriterion(
        criterion="Weight",
        value=f"{donor.weight} kg",
        required=f"Minimum {cfg['min_weight_kg']} kg",
        reason=f"Minimum weight requirement is {cfg['min_weight_kg']}kg to safely donate blood",
        passed=donor.weight >= cfg["min_weight_kg"],
    ))

    criteria.append(EligibilityCriterion(
        criterion="BMI",
        value=f"{donor.bmi:.1f}" if donor.bmi is not None else None,
        required=f"Minimum {cfg['min_bmi']}",
        reason=f"BMI must be at least {cfg['min_bmi']} (underweight individuals not eligible)",
        passed=donor.bmi is not None and donor.bmi >= cfg["min_bmi"],
    ))

    criteria.append(EligibilityCriterion(
        criterion="Hemoglobin",
        value=f"{donor.hemoglobin} g/dL" if donor.hemoglobin is not None else None,
        required=f"Minimum {cfg['min_hemoglobin']} g/dL",
        reason=f"Hemoglobin level must be at least {cfg['min_hemoglobin']} g/dL to donate blood safely",
        passed=donor.hemoglobin is not None and donor.hemoglobin >= cfg["min_hemoglobin"],
    ))

    for field_name, label in cfg["disease_tests"].items():
        value = getattr(donor, field_name)
        disease = label[: -len(" Test")]
        criteria.append(EligibilityCriterion(
            criterion=label,
            value=value,
            required="Negative",
            reason=f"{disease} test must be negative for blood donation eligibility",
            passed=is_negative(value),
        ))

    if not donor.never_donated and donor.last_donation:
        months = (today - donor.last_donation).days / 30
        required_gap = cfg["donation_interval_months"][donor.gender]
        criteria.append(EligibilityCriterion(
            criterion="Donation Interval",
            value=f"{months:.1f} months since last donation",
            required=f"Minimum {required_gap} months",
            reason=f"You must wait at least {required_gap} months since your last donation ({donor.gender} donor)",
            passed=months >= required_gap,
        ))

    failed = [c for c in criteria if not c.passed]
    return EligibilityCheckResult(passed=not failed, failed_criteria=failed, all_criteria=criteria)


def is_matchable(donor, now: datetime) -> bool:
    """
    Re-check run right before ranking.

    Registration data can go stale between verification and a shortage,
    so status, age, weight, interval, hemoglobin and tests are all checked again.
    """
    cfg = ELIGIBILITY_CONFIG

    if donor.status != "approved":
        return False
    if donor.suspended_until is not None and donor.suspended_until > now:
        return False

    age = exact_age(donor.date_of_birth, now.date())
    if age < cfg["min_age"] or age > cfg["max_age"]:
        return False

    if donor.weight < cfg["min_weight_kg"]:
        return False

    if donor.last_donation is not None:
        days = (now.date() - donor.last_donation).days
        if days < cfg["donation_interval_days"][donor.gender]:
            return False

    min_hb = cfg["hemoglobin_by_gender"][donor.gender]
    if donor.hemoglobin is None or donor.hemoglobin < min_hb:
        return False

    return all(is_negative(getattr(donor, field)) for field in cfg["disease_tests"])
