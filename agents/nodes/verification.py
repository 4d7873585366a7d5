"""
Verification Agent Node

Two-stage donor screening: the document check (done upstream, we receive its
result) and the eligibility screen. Only donors approved here are ever ranked
for a shortage.
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional

from langsmith import traceable
from pydantic import BaseModel, Field

from haemo_core.config import VERIFICATION_CONFIG
from haemo_core.decisions import AgentType, AuditNote, EligibilityDecision
from haemo_core.event_log import EventType
from haemo_core.exceptions import NotFoundError, ValidationError
from haemo_core.models.eligibility import age_in_years, check_donor_eligibility
from haemo_core.utils.prompts import reason_about_eligibility

from ..config import AgentConfig
from ..context import AgentContext

logger = logging.getLogger(__name__)

_langsmith_project = AgentConfig.LANGSMITH_PROJECT


class DocumentCheckResult(BaseModel):
    """Outcome of matching the uploaded ID documents against the registration"""
    all_passed: bool
    has_technical_error: bool = False
    mismatches: List[Dict[str, Any]] = Field(default_factory=list)


class VerificationResult(BaseModel):
    donor_id: str
    stage: Literal["document", "eligibility", "completed"]
    passed: bool
    decision: Optional[Literal["approved", "rejected", "needs_review"]] = None
    reason: str = ""
    failed_criteria: List[str] = Field(default_factory=list)
    attempts_remaining: Optional[int] = None
    suspended_until: Optional[str] = None
    event_id: Optional[str] = None


@traceable(name="verification_agent", project_name=_langsmith_project)
def process_donor_verification(ctx: AgentContext, donor_id: str, document_result: DocumentCheckResult) -> VerificationResult:
    logger.info(f"[Verification Agent] Processing verification for donor {donor_id}")

    donor = ctx.repos.donors.get(donor_id)
    if donor is None:
        raise NotFoundError("Donor", donor_id)

    now = ctx.now()
    if donor.suspended_until is not None and donor.suspended_until > now:
        raise ValidationError(
            f"Verification suspended until {donor.suspended_until.isoformat()}. Please try again after the cooldown.",
            details={"suspended_until": donor.suspended_until.isoformat()},
        )

    if not document_result.all_passed:
        return _handle_document_failure(ctx, donor, document_result)

    logger.info("[Verification Agent] Documents verified. Starting eligibility check...")
    return _screen_eligibility(ctx, donor)


def _handle_document_failure(ctx: AgentContext, donor, document_result: DocumentCheckResult) -> VerificationResult:
    now = ctx.now()
    max_attempts = VERIFICATION_CONFIG["max_document_attempts"]

    event = ctx.events.publish(
        EventType.VERIFICATION_DOCUMENT_FAILED,
        {
            "donor_id": donor.id,
            "mismatches": document_result.mismatches,
            "technical_error": document_result.has_technical_error,
        },
        producing_agent=AgentType.VERIFICATION.value,
    )

    # A technical error (unreadable scan, OCR outage) is not the donor's fault
    attempts = donor.verification_attempts
    if not document_result.has_technical_error:
        attempts += 1

    suspended_until = None
    if attempts >= max_attempts:
        suspended_until = now + timedelta(days=VERIFICATION_CONFIG["suspension_days"])
        ctx.repos.donors.update(donor.id, verification_attempts=0, suspended_until=suspended_until)
        reasoning = (
            f"Document verification failed {attempts} times. "
            f"Verification suspended for {VERIFICATION_CONFIG['suspension_days']} days."
        )
    else:
        ctx.repos.donors.update(donor.id, verification_attempts=attempts)
        reasoning = f"Document verification failed. Donor can retry up to {max_attempts} times."

    ctx.record_decision(
        AgentType.VERIFICATION,
        "document_verification_failed",
        AuditNote(
            summary="Document verification failed",
            details={"mismatches": document_result.mismatches, "attempts": attempts},
            reasoning=reasoning,
            confidence=1.0,
        ),
        raw_context={"donor_id": donor.id},
    )

    logger.info(f"[Verification Agent] Document verification failed for {donor.id} ({attempts}/{max_attempts})")
    return VerificationResult(
        donor_id=donor.id,
        stage="document",
        passed=False,
        reason=reasoning,
        attempts_remaining=0 if suspended_until else max_attempts - attempts,
        suspended_until=suspended_until.isoformat() if suspended_until else None,
        event_id=event.id,
    )


def _screen_eligibility(ctx: AgentContext, donor) -> VerificationResult:
    now = ctx.now()
    check = check_donor_eligibility(donor, now.date())
    age = age_in_years(donor.date_of_birth, now.date())

    outcome = reason_about_eligibility(ctx.reasoning, check, donor, age)
    if outcome.ok:
        advice = outcome.value
        decision, reasoning, confidence, source = advice.final_decision, advice.reasoning, advice.confidence, "reasoning"
        guidance = "; ".join(advice.recommendations + advice.edge_cases)
    else:
        logger.warning(f"[Verification Agent] Eligibility reasoning failed, using criteria: {outcome.error.message}")
        decision = "approved" if check.passed else "rejected"
        reasoning = (
            "All eligibility criteria met. Donor approved."
            if check.passed
            else f"Donor failed {len(check.failed_criteria)} eligibility criteria: {', '.join(check.failed_names)}"
        )
        confidence, source, guidance = 1.0, "fallback", ""

    # Hard medical requirements are never waived, whatever the reasoning says
    override_applied = False
    hard_failures = [c.criterion for c in check.hard_failures]
    if hard_failures and decision != "rejected":
        logger.warning(
            "[Verification Agent] Approval suggested but critical medical requirements failed. Overriding to rejected."
        )
        decision = "rejected"
        reasoning = f"Critical medical requirements failed: {', '.join(hard_failures)}. Safety override applied."
        override_applied = True

    event = ctx.events.publish(
        EventType.VERIFICATION_ELIGIBILITY_PASSED if check.passed else EventType.VERIFICATION_ELIGIBILITY_FAILED,
        {
            "donor_id": donor.id,
            "eligibility_passed": check.passed,
            "failed_criteria": [c.model_dump() for c in check.failed_criteria],
        },
        producing_agent=AgentType.VERIFICATION.value,
    )

    ctx.record_decision(
        AgentType.VERIFICATION,
        "eligibility_passed" if check.passed else "eligibility_failed",
        EligibilityDecision(
            outcome=decision,
            failed_criteria=check.failed_names,
            override_applied=override_applied,
            guidance=guidance,
            reasoning=reasoning,
            confidence=confidence,
            source=source,
        ),
        raw_context={"donor_id": donor.id, "criteria": [c.model_dump() for c in check.all_criteria]},
    )

    suspended_until = None
    if decision == "approved" and check.passed:
        ctx.repos.donors.update(donor.id, status="approved", verification_attempts=0)
        logger.info(f"[Verification Agent] Donor {donor.id} passed all checks")
        stage, passed = "completed", True
    elif decision == "needs_review":
        ctx.repos.donors.update(donor.id, status="pending")
        logger.info(f"[Verification Agent] Donor {donor.id} flagged for review")
        stage, passed = "eligibility", False
        reasoning = f"Needs review: {reasoning}"
    else:
        decision = "rejected"
        suspended_until = now + timedelta(days=VERIFICATION_CONFIG["suspension_days"])
        ctx.repos.donors.update(donor.id, status="rejected", suspended_until=suspended_until)
        logger.info(f"[Verification Agent] Donor {donor.id} failed eligibility: {', '.join(check.failed_names)}")
        stage, passed = "eligibility", False

    return VerificationResult(
        donor_id=donor.id,
        stage=stage,
        passed=passed,
        decision=decision,
        reason=reasoning,
        failed_criteria=check.failed_names,
        suspended_until=suspended_until.isoformat() if suspended_until else None,
        event_id=event.id,
    )


def get_verification_stats(ctx: AgentContext) -> Dict:
    """Dashboard totals plus the five most common failed criteria"""
    decisions = ctx.repos.decisions.query(agent_type=AgentType.VERIFICATION.value)

    failures: Counter = Counter()
    for d in decisions:
        if d.event_type == "eligibility_failed":
            failures.update(d.decision.failed_criteria)

    return {
        "total": len(decisions),
        "document_failed": sum(1 for d in decisions if d.event_type == "document_verification_failed"),
        "eligibility_failed": sum(1 for d in decisions if d.event_type == "eligibility_failed"),
        "passed": sum(1 for d in decisions if d.event_type == "eligibility_passed"),
        "common_failures": [{"criterion": c, "count": n} for c, n in failures.most_common(5)],
    }
