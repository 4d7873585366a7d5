"""
Unit Tests for the Verification Agent
"""

import pytest
from datetime import timedelta

from agents.nodes.verification import DocumentCheckResult, get_verification_stats, process_donor_verification
from haemo_core.event_log import EventType
from haemo_core.exceptions import NotFoundError, ValidationError
from haemo_core.utils.reasoning import ReasoningOutcome

DOCUMENTS_OK = DocumentCheckResult(all_passed=True)
NAME_MISMATCH = DocumentCheckResult(
    all_passed=False,
    mismatches=[{"field": "last_name", "registered": "Kumar", "document": "Kumari"}],
)


@pytest.fixture
def applicant(make_donor):
    return make_donor(status="pending")


class TestEligibilityScreen:

    def test_eligible_donor_approved(self, ctx, repos, applicant):
        result = process_donor_verification(ctx, applicant.id, DOCUMENTS_OK)

        assert result.stage == "completed"
        assert result.passed
        assert result.decision == "approved"
        assert repos.donors.get(applicant.id).status == "approved"

        event = repos.events.query(event_type=EventType.VERIFICATION_ELIGIBILITY_PASSED.value)[0]
        assert event.id == result.event_id
        decision = repos.decisions.query(event_type="eligibility_passed")[0]
        assert decision.decision.source == "fallback"
        assert decision.raw_context["donor_id"] == applicant.id

    def test_low_hemoglobin_never_approved(self, ctx, repos, clock, reasoning, make_donor):
        donor = make_donor(status="pending", hemoglobin=11.0)
        reasoning.reason.return_value = ReasoningOutcome.succeeded({
            "final_decision": "approved",
            "reasoning": "Slightly low but otherwise healthy",
            "confidence": 0.7,
        })

        result = process_donor_verification(ctx, donor.id, DOCUMENTS_OK)

        assert result.decision == "rejected"
        assert not result.passed
        assert result.failed_criteria == ["Hemoglobin"]
        assert "Safety override applied" in result.reason

        stored = repos.donors.get(donor.id)
        assert stored.status == "rejected"
        assert stored.suspended_until == clock() + timedelta(days=14)

        decision = repos.decisions.query(event_type="eligibility_failed")[0].decision
        assert decision.override_applied
        assert decision.outcome == "rejected"

    def test_positive_disease_test_is_hard_failure(self, ctx, reasoning, make_donor):
        donor = make_donor(status="pending", malaria_test="positive")
        reasoning.reason.return_value = ReasoningOutcome.succeeded({"final_decision": "needs_review"})

        result = process_donor_verification(ctx, donor.id, DOCUMENTS_OK)

        assert result.decision == "rejected"
        assert result.failed_criteria == ["Malaria Test"]

    def test_borderline_bmi_flagged_for_review(self, ctx, repos, reasoning, make_donor):
        donor = make_donor(status="pending", bmi=18.3)
        reasoning.reason.return_value = ReasoningOutcome.succeeded({
            "final_decision": "needs_review",
            "reasoning": "BMI just under the minimum",
            "edge_cases": ["BMI 18.3 vs 18.5"],
            "confidence": 0.6,
        })

        result = process_donor_verification(ctx, donor.id, DOCUMENTS_OK)

        assert result.decision == "needs_review"
        assert result.stage == "eligibility"
        assert not result.passed
        assert repos.donors.get(donor.id).status == "pending"
        assert repos.donors.get(donor.id).suspended_until is None

    def test_failed_soft_criterion_without_reasoning(self, ctx, repos, make_donor):
        donor = make_donor(status="pending", bmi=17.9)

        result = process_donor_verification(ctx, donor.id, DOCUMENTS_OK)

        assert result.decision == "rejected"
        assert result.failed_criteria == ["BMI"]
        assert repos.events.query(event_type=EventType.VERIFICATION_ELIGIBILITY_FAILED.value)

    def test_unknown_donor(self, ctx):
        with pytest.raises(NotFoundError):
            process_donor_verification(ctx, "missing", DOCUMENTS_OK)


class TestDocumentFailures:

    def test_three_strikes_suspend(self, ctx, repos, clock, applicant):
        remaining = [process_donor_verification(ctx, applicant.id, NAME_MISMATCH).attempts_remaining for _ in range(3)]

        assert remaining == [2, 1, 0]
        stored = repos.donors.get(applicant.id)
        assert stored.suspended_until == clock() + timedelta(days=14)
        assert stored.verification_attempts == 0

        with pytest.raises(ValidationError, match="suspended"):
            process_donor_verification(ctx, applicant.id, DOCUMENTS_OK)

    def test_suspension_expires(self, ctx, repos, clock, applicant):
        for _ in range(3):
            process_donor_verification(ctx, applicant.id, NAME_MISMATCH)

        clock.advance(days=15)
        result = process_donor_verification(ctx, applicant.id, DOCUMENTS_OK)

        assert result.passed

    def test_technical_error_does_not_count(self, ctx, repos, applicant):
        glitch = DocumentCheckResult(all_passed=False, has_technical_error=True)

        result = process_donor_verification(ctx, applicant.id, glitch)

        assert result.stage == "document"
        assert result.attempts_remaining == 3
        assert repos.donors.get(applicant.id).verification_attempts == 0

    def test_failure_published(self, ctx, repos, applicant):
        result = process_donor_verification(ctx, applicant.id, NAME_MISMATCH)

        event = repos.events.query(event_type=EventType.VERIFICATION_DOCUMENT_FAILED.value)[0]
        assert event.id == result.event_id
        assert event.payload["mismatches"][0]["field"] == "last_name"


class TestStats:

    def test_counts_and_common_failures(self, ctx, make_donor, applicant):
        process_donor_verification(ctx, applicant.id, DOCUMENTS_OK)
        process_donor_verification(ctx, make_donor(status="pending", hemoglobin=11.0).id, DOCUMENTS_OK)
        process_donor_verification(ctx, make_donor(status="pending", hemoglobin=10.5, weight=45).id, DOCUMENTS_OK)
        process_donor_verification(ctx, make_donor(status="pending").id, NAME_MISMATCH)

        stats = get_verification_stats(ctx)

        assert stats["total"] == 4
        assert stats["passed"] == 1
        assert stats["eligibility_failed"] == 2
        assert stats["document_failed"] == 1
        assert stats["common_failures"][0] == {"criterion": "Hemoglobin", "count": 2}
        assert {"criterion": "Weight", "count": 1} in stats["common_failures"]
