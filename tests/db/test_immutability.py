"""
ORM immutability listeners.

Writes that bypass the services (direct ORM edits) are blocked at flush
time for issued invoices, invoice lines, payments, billed change orders and
the activity trail.
"""

from datetime import date

import pytest
from sqlalchemy import select

from billing_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from billing_kernel.exceptions import ImmutabilityViolationError
from billing_kernel.models.activity import JobActivity
from billing_modules.change_orders.orm import ChangeOrderModel
from billing_modules.invoices.orm import InvoiceLineModel, InvoiceModel
from billing_modules.payments.orm import PaymentModel


@pytest.fixture
def job(priced_job):
    return priced_job(1_000_000)


@pytest.fixture
def deposit(session, invoices, job, office):
    dto = invoices.generate(job.id, "deposit", office, custom_amount=250_000)
    return session.get(InvoiceModel, dto.id)


@pytest.fixture
def billed_order(session, invoices, job, office, approved_change_order):
    dto = approved_change_order(job.id, 40_000)
    invoices.generate(job.id, "supplement", office, change_order_ids=[dto.id])
    return session.get(ChangeOrderModel, dto.id)


class TestInvoiceImmutability:

    def test_amount_frozen(self, session, deposit):
        deposit.total_amount = 1
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Invoice"
        assert "total_amount" in exc_info.value.reason

    def test_due_date_frozen(self, session, deposit):
        deposit.due_date = date(2030, 1, 1)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_status_may_change(self, session, deposit):
        deposit.status = "sent"
        session.flush()
        assert session.get(InvoiceModel, deposit.id).status == "sent"

    def test_delete_blocked(self, session, deposit):
        session.delete(deposit)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_line_frozen(self, session, deposit):
        line = session.execute(
            select(InvoiceLineModel).where(InvoiceLineModel.invoice_id == deposit.id)
        ).scalar_one()
        line.description = "Rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "InvoiceLine"


class TestPaymentImmutability:

    def test_amount_frozen(self, session, payments, job, office):
        dto = payments.record(job.id, 10_000, date(2024, 1, 3), "cash", office)
        payment = session.get(PaymentModel, dto.id)
        payment.amount = 1
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Payment"

    def test_delete_allowed(self, session, payments, job, office):
        dto = payments.record(job.id, 10_000, date(2024, 1, 3), "cash", office)
        session.delete(session.get(PaymentModel, dto.id))
        session.flush()
        assert session.get(PaymentModel, dto.id) is None


class TestChangeOrderImmutability:

    def test_unbilled_order_editable(self, session, change_orders, job, sales_rep):
        dto = change_orders.create(job.id, "supplement", "Gutters", 5_000, sales_rep)
        order = session.get(ChangeOrderModel, dto.id)
        order.amount = 6_000
        session.flush()

    @pytest.mark.parametrize("field, value", [
        ("amount", 1),
        ("status", "pending"),
        ("change_type", "supplement"),
    ])
    def test_billed_fields_frozen(self, session, billed_order, field, value):
        setattr(billed_order, field, value)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ChangeOrder"

    def test_unlink_blocked(self, session, billed_order):
        billed_order.invoice_id = None
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_billed_description_editable(self, session, billed_order):
        billed_order.description = "Valley flashing (revised wording)"
        session.flush()

    def test_billed_delete_blocked(self, session, billed_order):
        session.delete(billed_order)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestActivityImmutability:

    def test_entries_frozen(self, session, job):
        entry = session.execute(
            select(JobActivity).where(JobActivity.job_id == job.id).limit(1)
        ).scalar_one()
        entry.description = "Something else happened"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_entries_not_deletable(self, session, job):
        entry = session.execute(
            select(JobActivity).where(JobActivity.job_id == job.id).limit(1)
        ).scalar_one()
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestListenerRegistration:

    def test_unregister_and_restore(self, session, deposit):
        unregister_immutability_listeners()
        try:
            deposit.notes = "Edited while unprotected"
            session.flush()
        finally:
            register_immutability_listeners()

        deposit.notes = "Edited again"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_register_is_idempotent(self, session, deposit):
        register_immutability_listeners()
        register_immutability_listeners()
        deposit.status = "sent"
        session.flush()
