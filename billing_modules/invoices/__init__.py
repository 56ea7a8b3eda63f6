"""
Invoices Module.

Deposit, progress, supplement and final invoices for a job, their line
items, and the invoice status lifecycle.
"""

from billing_modules.invoices.models import (
    Invoice,
    InvoiceLine,
    InvoiceStats,
    InvoiceStatus,
    InvoiceType,
)
from billing_modules.invoices.workflows import INVOICE_WORKFLOW

__all__ = [
    "INVOICE_WORKFLOW",
    "Invoice",
    "InvoiceLine",
    "InvoiceStats",
    "InvoiceStatus",
    "InvoiceType",
]
