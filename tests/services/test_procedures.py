"""
Tests for the named procedure table.

Payloads carry dollars as decimal strings and ids as strings; results come
back as plain dicts with two-place dollar strings.
"""

from datetime import date
from uuid import UUID

import pytest

from billing_kernel.exceptions import (
    AuthorizationError,
    ChangeOrderAlreadyBilledError,
    InvalidTransitionError,
    JobNotFoundError,
    PriceBelowFloorError,
    ProcedureNotFoundError,
    ValidationError,
)
from billing_services import error_payload

EXPECTED_PROCEDURES = {
    "jobs.create",
    "jobs.get",
    "jobs.updateSquareCount",
    "proposal.submit",
    "proposal.approve",
    "proposal.counter",
    "proposal.acceptCounter",
    "proposal.denyCounter",
    "changeOrders.create",
    "changeOrders.approve",
    "changeOrders.reject",
    "changeOrders.reset",
    "changeOrders.delete",
    "changeOrders.getJobSummary",
    "changeOrders.getUnbilledChangeOrders",
    "changeOrders.getJobChangeOrders",
    "invoices.generate",
    "invoices.getJobInvoices",
    "invoices.updateStatus",
    "invoices.suggestDeposit",
    "invoices.getStats",
    "payments.record",
    "payments.delete",
    "payments.getPaymentSummary",
    "payments.getJobPayments",
    "ledger.getSummary",
    "activity.getJobActivity",
}


@pytest.fixture
def job_id(procedures, sales_rep):
    result = procedures.dispatch(
        "jobs.create",
        {"customerName": "Pat Homeowner", "dealType": "retail", "squareCount": "20"},
        sales_rep,
    )
    return result["id"]


class TestDispatchTable:

    def test_all_procedures_registered(self, procedures):
        assert set(procedures.procedure_names) == EXPECTED_PROCEDURES

    def test_unknown_procedure(self, procedures, office, captured_logs):
        with pytest.raises(ProcedureNotFoundError) as exc_info:
            procedures.dispatch("jobs.explode", {}, office)
        assert exc_info.value.procedure == "jobs.explode"
        records = [r for r in captured_logs() if r["message"] == "procedure_not_found"]
        assert records[0]["procedure_name"] == "jobs.explode"

    def test_log_context_carries_procedure(self, procedures, office, job_id, captured_logs):
        procedures.dispatch("jobs.get", {"jobId": job_id}, office, correlation_id="req-7")
        started = [r for r in captured_logs() if r["message"] == "procedure_started"]
        assert started[-1]["procedure"] == "jobs.get"
        assert started[-1]["correlation_id"] == "req-7"
        assert started[-1]["actor_id"] == str(office.actor_id)


class TestJobs:

    def test_create_and_get(self, procedures, office, job_id):
        job = procedures.dispatch("jobs.get", {"jobId": job_id}, office)
        assert job["customerName"] == "Pat Homeowner"
        assert job["dealType"] == "retail"
        assert job["priceStatus"] == "draft"
        assert job["totalPrice"] is None
        assert job["totalCollected"] == "0.00"
        UUID(job["id"])

    def test_float_square_count_rejected(self, procedures, sales_rep):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "jobs.create",
                {"customerName": "Pat", "dealType": "retail", "squareCount": 20.5},
                sales_rep,
            )
        assert exc_info.value.field == "squareCount"

    def test_missing_job(self, procedures, office, random_uuid):
        with pytest.raises(JobNotFoundError):
            procedures.dispatch("jobs.get", {"jobId": str(random_uuid)}, office)

    def test_bad_job_id(self, procedures, office):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch("jobs.get", {"jobId": "not-a-uuid"}, office)
        assert exc_info.value.field == "jobId"

    def test_missing_job_id(self, procedures, office):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch("jobs.get", {}, office)
        assert exc_info.value.field == "jobId"


class TestProposal:

    def test_submit_in_dollars(self, procedures, sales_rep, job_id):
        job = procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "475.00"}, sales_rep
        )
        assert job["priceStatus"] == "pending_approval"
        assert job["pricePerSquare"] == "475.00"
        assert job["totalPrice"] == "9500.00"

    def test_float_price_rejected(self, procedures, sales_rep, job_id):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "proposal.submit", {"jobId": job_id, "pricePerSquare": 475.0}, sales_rep
            )
        assert exc_info.value.field == "pricePerSquare"

    def test_garbage_price_rejected(self, procedures, sales_rep, job_id):
        with pytest.raises(ValidationError):
            procedures.dispatch(
                "proposal.submit", {"jobId": job_id, "pricePerSquare": "lots"}, sales_rep
            )

    def test_below_floor(self, procedures, sales_rep, job_id):
        with pytest.raises(PriceBelowFloorError):
            procedures.dispatch(
                "proposal.submit", {"jobId": job_id, "pricePerSquare": "449.99"}, sales_rep
            )

    @pytest.mark.parametrize("price", ["449.995", "449.999", "499.995"])
    def test_sub_cent_price_rejected(self, procedures, sales_rep, job_id, price):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "proposal.submit", {"jobId": job_id, "pricePerSquare": price}, sales_rep
            )
        assert exc_info.value.field == "pricePerSquare"
        job = procedures.dispatch("jobs.get", {"jobId": job_id}, sales_rep)
        assert job["priceStatus"] == "draft"
        assert job["pricePerSquare"] is None

    def test_trailing_zeros_accepted(self, procedures, sales_rep, job_id):
        job = procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "450.000"}, sales_rep
        )
        assert job["pricePerSquare"] == "450.00"

    def test_override_must_be_boolean(self, procedures, owner, job_id):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "proposal.submit",
                {"jobId": job_id, "pricePerSquare": "475.00", "override": "false"},
                owner,
            )
        assert exc_info.value.field == "override"
        job = procedures.dispatch("jobs.get", {"jobId": job_id}, owner)
        assert job["priceStatus"] == "draft"

    def test_counter_round_trip(self, procedures, sales_rep, office, job_id):
        procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "460"}, sales_rep
        )
        countered = procedures.dispatch(
            "proposal.counter", {"jobId": job_id, "counterPrice": "480.00"}, office
        )
        assert countered["priceStatus"] == "negotiation"
        assert countered["counterPrice"] == "480.00"

        accepted = procedures.dispatch("proposal.acceptCounter", {"jobId": job_id}, sales_rep)
        assert accepted["priceStatus"] == "approved"
        assert accepted["pricePerSquare"] == "480.00"
        assert accepted["totalPrice"] == "9600.00"


class TestBillingFlow:

    def test_end_to_end(self, procedures, sales_rep, office, job_id):
        procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "500"}, sales_rep
        )
        order = procedures.dispatch(
            "changeOrders.create",
            {"jobId": job_id, "type": "retail_change", "description": "Skylight", "amount": "1500"},
            sales_rep,
        )
        assert order["amount"] == "1500.00"
        assert order["status"] == "pending"

        procedures.dispatch("changeOrders.approve", {"id": order["id"], "notes": "ok"}, office)

        suggestion = procedures.dispatch("invoices.suggestDeposit", {"jobId": job_id}, office)
        assert suggestion["suggestedAmount"] == "5750.00"

        deposit = procedures.dispatch(
            "invoices.generate",
            {"jobId": job_id, "type": "deposit", "customAmount": "5000.00", "dueDate": "2024-02-15"},
            office,
        )
        assert deposit["totalAmount"] == "5000.00"
        assert deposit["dueDate"] == "2024-02-15"
        assert deposit["status"] == "draft"

        final = procedures.dispatch("invoices.generate", {"jobId": job_id, "type": "final"}, office)
        assert final["totalAmount"] == "6500.00"

        sent = procedures.dispatch(
            "invoices.updateStatus", {"id": deposit["id"], "status": "sent"}, office
        )
        assert sent["status"] == "sent"

        payment = procedures.dispatch(
            "payments.record",
            {
                "jobId": job_id,
                "amount": "5000",
                "paymentDate": "2024-01-20",
                "paymentMethod": "check",
                "checkNumber": "1001",
            },
            office,
        )
        assert payment["amount"] == "5000.00"
        assert payment["paymentDate"] == "2024-01-20"

        summary = procedures.dispatch("ledger.getSummary", {"jobId": job_id}, office)
        assert summary == {
            "jobId": job_id,
            "baseContractValue": "10000.00",
            "approvedChanges": "1500.00",
            "totalContractValue": "11500.00",
            "totalInvoiced": "11500.00",
            "unbilledRevenue": "0.00",
            "totalCollected": "5000.00",
            "outstandingBalance": "6500.00",
            "invoiceCount": 2,
            "isFullyInvoiced": True,
            "hasOverage": False,
            "usesLegacyBase": False,
        }

        invoices = procedures.dispatch("invoices.getJobInvoices", {"jobId": job_id}, office)
        assert [inv["id"] for inv in invoices] == [final["id"], deposit["id"]]

    def test_supplement_and_double_billing(self, procedures, sales_rep, office, job_id):
        procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "500"}, sales_rep
        )
        order = procedures.dispatch(
            "changeOrders.create",
            {"jobId": job_id, "type": "supplement", "description": "Ice shield", "amount": "800"},
            sales_rep,
        )
        procedures.dispatch("changeOrders.approve", {"id": order["id"]}, office)

        unbilled = procedures.dispatch(
            "changeOrders.getUnbilledChangeOrders", {"jobId": job_id}, office
        )
        assert [o["id"] for o in unbilled] == [order["id"]]

        invoice = procedures.dispatch(
            "invoices.generate",
            {"jobId": job_id, "type": "supplement", "changeOrderIds": [order["id"]]},
            office,
        )
        assert invoice["totalAmount"] == "800.00"
        assert invoice["changeOrderIds"] == [order["id"]]
        assert invoice["lines"][0]["changeOrderId"] == order["id"]

        with pytest.raises(ChangeOrderAlreadyBilledError):
            procedures.dispatch(
                "invoices.generate",
                {"jobId": job_id, "type": "supplement", "changeOrderIds": [order["id"]]},
                office,
            )

        summary = procedures.dispatch("changeOrders.getJobSummary", {"jobId": job_id}, office)
        assert summary["totalBilled"] == "800.00"
        assert summary["totalUnbilled"] == "0.00"

    def test_change_order_delete(self, procedures, sales_rep, office, job_id):
        order = procedures.dispatch(
            "changeOrders.create",
            {"jobId": job_id, "type": "supplement", "description": "Vents", "amount": "120.50"},
            sales_rep,
        )
        result = procedures.dispatch("changeOrders.delete", {"id": order["id"]}, office)
        assert result == {"id": order["id"], "deleted": True}
        assert procedures.dispatch(
            "changeOrders.getJobChangeOrders", {"jobId": job_id}, sales_rep
        ) == []

    def test_payment_delete_returns_summary(self, procedures, office, job_id):
        payment = procedures.dispatch(
            "payments.record",
            {"jobId": job_id, "amount": "100", "paymentDate": "2024-01-02", "paymentMethod": "cash"},
            office,
        )
        summary = procedures.dispatch("payments.delete", {"id": payment["id"]}, office)
        assert summary == {"jobId": job_id, "totalPaid": "0.00", "paymentCount": 0}

    def test_bad_payment_date(self, procedures, office, job_id):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "payments.record",
                {"jobId": job_id, "amount": "100", "paymentDate": "yesterday", "paymentMethod": "cash"},
                office,
            )
        assert exc_info.value.field == "paymentDate"

    def test_payment_date_with_trailing_text(self, procedures, office, job_id):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "payments.record",
                {"jobId": job_id, "amount": "100", "paymentDate": "2026-01-01xyz",
                 "paymentMethod": "cash"},
                office,
            )
        assert exc_info.value.field == "paymentDate"

    def test_payment_date_accepts_timestamp(self, procedures, office, job_id):
        payment = procedures.dispatch(
            "payments.record",
            {"jobId": job_id, "amount": "100", "paymentDate": "2026-01-01T09:30:00",
             "paymentMethod": "cash"},
            office,
        )
        assert payment["paymentDate"] == "2026-01-01"

    def test_change_order_ids_must_be_list(self, procedures, office, job_id):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "invoices.generate",
                {"jobId": job_id, "type": "supplement", "changeOrderIds": "abc"},
                office,
            )
        assert exc_info.value.field == "changeOrderIds"

    def test_invoice_stats(self, procedures, sales_rep, office, job_id):
        procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "500"}, sales_rep
        )
        procedures.dispatch(
            "invoices.generate", {"jobId": job_id, "type": "deposit", "customAmount": "2500.00"},
            office,
        )
        expected = {
            "totalOverdue": "0.00",
            "totalDrafts": 1,
            "activeCount": 0,
            "avgTicketSize": "2500.00",
            "invoiceCount": 1,
        }
        assert procedures.dispatch("invoices.getStats", {}, office) == {"jobId": None, **expected}
        assert procedures.dispatch("invoices.getStats", {"jobId": job_id}, office) == {
            "jobId": job_id, **expected
        }


class TestActivity:

    def test_newest_first(self, procedures, sales_rep, job_id):
        procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "500"}, sales_rep
        )
        entries = procedures.dispatch("activity.getJobActivity", {"jobId": job_id}, sales_rep)
        types = [e["activityType"] for e in entries]
        assert types[-1] == "job_created"
        assert "price_submitted" in types
        assert entries[0]["seq"] > entries[-1]["seq"]

    def test_limit(self, procedures, sales_rep, job_id):
        procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "500"}, sales_rep
        )
        entries = procedures.dispatch(
            "activity.getJobActivity", {"jobId": job_id, "limit": 1}, sales_rep
        )
        assert len(entries) == 1

    @pytest.mark.parametrize("limit", ["abc", 0, -1, True, 2.5])
    def test_bad_limit(self, procedures, sales_rep, job_id, limit):
        with pytest.raises(ValidationError) as exc_info:
            procedures.dispatch(
                "activity.getJobActivity", {"jobId": job_id, "limit": limit}, sales_rep
            )
        assert exc_info.value.field == "limit"

    def test_unknown_job(self, procedures, office, random_uuid):
        with pytest.raises(JobNotFoundError):
            procedures.dispatch("activity.getJobActivity", {"jobId": str(random_uuid)}, office)


class TestErrorPayload:

    def test_conflict_fields(self, procedures, sales_rep, office, job_id):
        procedures.dispatch(
            "proposal.submit", {"jobId": job_id, "pricePerSquare": "500"}, sales_rep
        )
        with pytest.raises(InvalidTransitionError) as exc_info:
            procedures.dispatch(
                "proposal.counter", {"jobId": job_id, "counterPrice": "480"}, office
            )
        payload = error_payload(exc_info.value)
        assert payload["error"] == "INVALID_TRANSITION"
        assert payload["entity_id"] == job_id
        assert payload["current_state"] == "approved"
        assert payload["message"] == str(exc_info.value)

    def test_validation_field(self):
        payload = error_payload(ValidationError("amount is required", field="amount"))
        assert payload == {
            "error": "VALIDATION_FAILED",
            "message": "amount is required",
            "field": "amount",
        }

    def test_tuples_become_lists(self):
        payload = error_payload(AuthorizationError("field_crew", "approve", ("owner", "office")))
        assert payload["allowed_roles"] == ["owner", "office"]
        assert payload["role"] == "field_crew"
