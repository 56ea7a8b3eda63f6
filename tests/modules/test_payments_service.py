"""Tests for PaymentRecorder."""

from datetime import date, datetime

import pytest

from billing_kernel.exceptions import (
    AuthorizationError,
    JobNotFoundError,
    PaymentNotFoundError,
    ValidationError,
)
from billing_modules.invoices.models import InvoiceStatus
from billing_modules.payments.models import PaymentMethod


@pytest.fixture
def job(priced_job):
    return priced_job(1_000_000)


class TestRecord:

    def test_records_payment(self, payments, jobs, job, office):
        payment = payments.record(
            job.id, 250_000, date(2024, 1, 5), "check", office, check_number="1042"
        )
        assert payment.amount == 250_000
        assert payment.payment_method == PaymentMethod.CHECK
        assert payment.check_number == "1042"
        assert jobs.get_job(job.id).total_collected == 250_000

    def test_datetime_payment_date(self, payments, job, office):
        payment = payments.record(job.id, 100, datetime(2024, 1, 5, 9, 30), "cash", office)
        assert payment.payment_date == date(2024, 1, 5)

    @pytest.mark.parametrize("amount", [0, -100, 100.0])
    def test_amount_must_be_positive_cents(self, payments, job, office, amount):
        with pytest.raises(ValidationError) as exc_info:
            payments.record(job.id, amount, date(2024, 1, 5), "cash", office)
        assert exc_info.value.field == "amount"

    def test_unknown_method(self, payments, job, office):
        with pytest.raises(ValidationError) as exc_info:
            payments.record(job.id, 100, date(2024, 1, 5), "barter", office)
        assert exc_info.value.field == "payment_method"

    def test_bad_date(self, payments, job, office):
        with pytest.raises(ValidationError) as exc_info:
            payments.record(job.id, 100, "2024-01-05", "cash", office)
        assert exc_info.value.field == "payment_date"

    def test_unknown_job(self, payments, office, random_uuid):
        with pytest.raises(JobNotFoundError):
            payments.record(random_uuid, 100, date(2024, 1, 5), "cash", office)

    def test_field_crew_cannot_record(self, payments, job, field_crew):
        with pytest.raises(AuthorizationError):
            payments.record(job.id, 100, date(2024, 1, 5), "cash", field_crew)


class TestDelete:

    def test_delete_updates_totals(self, payments, jobs, job, office):
        keep = payments.record(job.id, 100_000, date(2024, 1, 5), "check", office)
        drop = payments.record(job.id, 50_000, date(2024, 1, 6), "wire", office)

        summary = payments.delete(drop.id, office)

        assert summary.total_paid == 100_000
        assert summary.payment_count == 1
        assert jobs.get_job(job.id).total_collected == 100_000
        assert [p.id for p in payments.get_job_payments(job.id)] == [keep.id]

    def test_delete_leaves_invoices_untouched(self, payments, invoices, job, office):
        invoice = invoices.generate(job.id, "deposit", office, custom_amount=100_000)
        invoices.send(invoice.id, office)
        invoices.mark_paid(invoice.id, office)
        payment = payments.record(job.id, 100_000, date(2024, 1, 5), "check", office)

        payments.delete(payment.id, office)

        assert invoices.get_invoice(invoice.id).status == InvoiceStatus.PAID

    def test_sales_rep_cannot_delete(self, payments, job, office, sales_rep):
        payment = payments.record(job.id, 100, date(2024, 1, 5), "cash", office)
        with pytest.raises(AuthorizationError):
            payments.delete(payment.id, sales_rep)
        assert payments.get_summary(job.id).payment_count == 1

    def test_missing_payment(self, payments, office, random_uuid):
        with pytest.raises(PaymentNotFoundError):
            payments.delete(random_uuid, office)


class TestReads:

    def test_summary(self, payments, job, office):
        payments.record(job.id, 100_000, date(2024, 1, 5), "check", office)
        payments.record(job.id, 25_000, date(2024, 1, 9), "cash", office)
        summary = payments.get_summary(job.id)
        assert summary.total_paid == 125_000
        assert summary.payment_count == 2

    def test_summary_empty(self, payments, job):
        summary = payments.get_summary(job.id)
        assert summary.total_paid == 0
        assert summary.payment_count == 0

    def test_newest_payment_date_first(self, payments, job, office):
        older = payments.record(job.id, 100, date(2024, 1, 5), "cash", office)
        newer = payments.record(job.id, 100, date(2024, 2, 5), "cash", office)
        assert [p.id for p in payments.get_job_payments(job.id)] == [newer.id, older.id]
