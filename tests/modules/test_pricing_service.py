"""
Tests for PricingNegotiationEngine.

Validates:
- Floor and auto-approval boundaries ($450 / $500 per square)
- Role gates for submit, approve, counter and override
- Counter-offer negotiation: accept, deny
- No partial writes on rejection
"""

from uuid import uuid4

import pytest

from billing_kernel.domain.roles import Actor
from billing_kernel.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    PriceBelowFloorError,
    ValidationError,
)
from billing_kernel.services.activity_service import ActivityService
from billing_modules.pricing.models import PriceStatus


@pytest.fixture
def job(make_job):
    return make_job(square_count="20")


# =============================================================================
# Boundaries
# =============================================================================


class TestPriceBoundaries:

    def test_below_floor_rejected_and_not_persisted(self, pricing, job, owner):
        with pytest.raises(PriceBelowFloorError) as exc_info:
            pricing.submit(job.id, 44_999, owner)
        assert exc_info.value.field == "price_per_square"
        assert exc_info.value.code == "PRICE_BELOW_FLOOR"
        reloaded = pricing.get_job(job.id)
        assert reloaded.price_status == PriceStatus.DRAFT
        assert reloaded.price_per_square is None
        assert reloaded.total_price is None

    def test_at_floor_requires_approval(self, pricing, job, sales_rep):
        result = pricing.submit(job.id, 45_000, sales_rep)
        assert result.price_status == PriceStatus.PENDING_APPROVAL
        assert result.total_price == 900_000
        assert result.approved_by_id is None

    def test_just_below_threshold_requires_approval(self, pricing, job, sales_rep):
        result = pricing.submit(job.id, 49_999, sales_rep)
        assert result.price_status == PriceStatus.PENDING_APPROVAL

    def test_at_threshold_auto_approves(self, pricing, job, sales_rep):
        result = pricing.submit(job.id, 50_000, sales_rep)
        assert result.price_status == PriceStatus.APPROVED
        assert result.total_price == 1_000_000
        assert result.approved_by_id == sales_rep.actor_id
        assert result.approved_at is not None

    def test_above_threshold_auto_approves(self, pricing, job, sales_rep):
        result = pricing.submit(job.id, 50_001, sales_rep)
        assert result.price_status == PriceStatus.APPROVED

    def test_total_rounds_half_up(self, pricing, make_job, sales_rep):
        job = make_job(square_count="22.33")
        result = pricing.submit(job.id, 47_500, sales_rep)
        assert result.total_price == 1_060_675

    def test_float_price_rejected(self, pricing, job, sales_rep):
        with pytest.raises(ValidationError):
            pricing.submit(job.id, 475.0, sales_rep)

    def test_zero_squares_rejected(self, pricing, make_job, sales_rep):
        job = make_job(square_count="0")
        with pytest.raises(ValidationError) as exc_info:
            pricing.submit(job.id, 50_000, sales_rep)
        assert exc_info.value.field == "square_count"


# =============================================================================
# Roles and transitions
# =============================================================================


class TestSubmitRules:

    def test_field_crew_cannot_submit(self, pricing, job, field_crew):
        with pytest.raises(AuthorizationError):
            pricing.submit(job.id, 50_000, field_crew)

    def test_alias_role_can_submit(self, pricing, job):
        result = pricing.submit(job.id, 47_500, Actor(uuid4(), "project_manager"))
        assert result.submitted_by_role == "sales_rep"

    def test_resubmit_while_pending_is_invalid(self, pricing, job, sales_rep):
        pricing.submit(job.id, 47_500, sales_rep)
        with pytest.raises(InvalidTransitionError) as exc_info:
            pricing.submit(job.id, 48_000, sales_rep)
        assert exc_info.value.current_state == "pending_approval"

    def test_submit_after_approval_is_invalid(self, pricing, job, sales_rep):
        pricing.submit(job.id, 50_000, sales_rep)
        with pytest.raises(InvalidTransitionError):
            pricing.submit(job.id, 52_000, sales_rep)


class TestOverride:

    def test_owner_override_below_threshold(self, pricing, job, owner):
        result = pricing.submit(job.id, 46_000, owner, override=True)
        assert result.price_status == PriceStatus.APPROVED
        assert result.price_per_square == 46_000

    def test_override_reprices_pending_proposal(self, pricing, job, sales_rep, office):
        pricing.submit(job.id, 47_500, sales_rep)
        result = pricing.submit(job.id, 46_500, office, override=True)
        assert result.price_status == PriceStatus.APPROVED
        assert result.total_price == 930_000

    def test_override_never_below_floor(self, pricing, job, owner):
        with pytest.raises(PriceBelowFloorError):
            pricing.submit(job.id, 40_000, owner, override=True)

    def test_non_approver_override_denied(self, pricing, job, sales_rep):
        with pytest.raises(AuthorizationError):
            pricing.submit(job.id, 46_000, sales_rep, override=True)
        assert pricing.get_job(job.id).price_status == PriceStatus.DRAFT


class TestApprove:

    def test_office_approves_pending(self, pricing, job, sales_rep, office):
        pricing.submit(job.id, 47_500, sales_rep)
        result = pricing.approve(job.id, office)
        assert result.price_status == PriceStatus.APPROVED
        assert result.price_per_square == 47_500
        assert result.approved_by_id == office.actor_id

    def test_sales_rep_cannot_approve(self, pricing, job, sales_rep):
        pricing.submit(job.id, 47_500, sales_rep)
        with pytest.raises(AuthorizationError):
            pricing.approve(job.id, sales_rep)

    def test_approve_twice_is_noop(self, pricing, job, sales_rep, office, owner):
        pricing.submit(job.id, 47_500, sales_rep)
        first = pricing.approve(job.id, office)
        second = pricing.approve(job.id, owner)
        assert second.approved_by_id == first.approved_by_id == office.actor_id

    def test_approve_from_draft_invalid(self, pricing, job, owner):
        with pytest.raises(InvalidTransitionError):
            pricing.approve(job.id, owner)


class TestNegotiation:

    @pytest.fixture
    def pending(self, pricing, job, sales_rep):
        return pricing.submit(job.id, 46_000, sales_rep)

    def test_counter(self, pricing, pending, owner):
        result = pricing.counter(pending.id, 47_500, owner)
        assert result.price_status == PriceStatus.NEGOTIATION
        assert result.counter_price == 47_500
        assert result.price_per_square == 46_000

    def test_counter_below_floor(self, pricing, pending, owner):
        with pytest.raises(PriceBelowFloorError) as exc_info:
            pricing.counter(pending.id, 44_000, owner)
        assert exc_info.value.field == "counter_price"
        assert pricing.get_job(pending.id).price_status == PriceStatus.PENDING_APPROVAL

    def test_counter_requires_approver(self, pricing, pending, team_lead):
        with pytest.raises(AuthorizationError):
            pricing.counter(pending.id, 47_500, team_lead)

    def test_accept_counter_by_submitter_role(self, pricing, pending, owner, sales_rep):
        pricing.counter(pending.id, 47_500, owner)
        result = pricing.accept_counter(pending.id, sales_rep)
        assert result.price_status == PriceStatus.APPROVED
        assert result.price_per_square == 47_500
        assert result.total_price == 950_000
        assert result.counter_price is None

    def test_accept_counter_by_other_role(self, pricing, pending, owner, team_lead):
        pricing.counter(pending.id, 47_500, owner)
        with pytest.raises(AuthorizationError):
            pricing.accept_counter(pending.id, team_lead)

    def test_accept_without_counter_invalid(self, pricing, pending, sales_rep):
        with pytest.raises(InvalidTransitionError):
            pricing.accept_counter(pending.id, sales_rep)

    def test_deny_counter_resets_to_draft(self, pricing, pending, owner, sales_rep):
        pricing.counter(pending.id, 47_500, owner)
        result = pricing.deny_counter(pending.id, sales_rep)
        assert result.price_status == PriceStatus.DRAFT
        assert result.price_per_square is None
        assert result.total_price is None
        assert result.counter_price is None

    def test_owner_may_deny_counter(self, pricing, pending, owner, office):
        pricing.counter(pending.id, 47_500, owner)
        assert pricing.deny_counter(pending.id, office).price_status == PriceStatus.DRAFT

    def test_resubmit_after_deny(self, pricing, pending, owner, sales_rep):
        pricing.counter(pending.id, 47_500, owner)
        pricing.deny_counter(pending.id, sales_rep)
        result = pricing.submit(pending.id, 50_000, sales_rep)
        assert result.price_status == PriceStatus.APPROVED


class TestAuditTrail:

    def test_activity_per_step(self, session, pricing, job, sales_rep, owner, deterministic_clock):
        pricing.submit(job.id, 46_000, sales_rep)
        pricing.counter(job.id, 47_500, owner)
        pricing.accept_counter(job.id, sales_rep)
        kinds = [
            e.activity_type
            for e in ActivityService(session, deterministic_clock).list_for_job(job.id)
        ]
        assert kinds == ["counter_accepted", "price_countered", "price_submitted", "job_created"]

    def test_rejection_logged(self, pricing, job, sales_rep, captured_logs):
        with pytest.raises(PriceBelowFloorError):
            pricing.submit(job.id, 100, sales_rep)
        rejected = [r for r in captured_logs() if r["message"] == "price_submit_rejected"]
        assert rejected
        assert rejected[0]["error_code"] == "PRICE_BELOW_FLOOR"
        assert rejected[0]["level"] == "WARNING"
