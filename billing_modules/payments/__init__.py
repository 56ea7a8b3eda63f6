"""
Payments Module.

Cash received against a job.  Payments are informational cash tracking,
not invoice settlement: recording or deleting one never touches invoices.
"""

from billing_modules.payments.models import Payment, PaymentMethod, PaymentSummary

__all__ = ["Payment", "PaymentMethod", "PaymentSummary"]
