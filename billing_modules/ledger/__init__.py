"""
Ledger Module.

Read-side composition of pricing, change orders, invoices and payments
into one job financial summary, plus the short-lived summary cache.
"""

from billing_modules.ledger.cache import LedgerSummaryCache
from billing_modules.ledger.models import LedgerSummary

__all__ = ["LedgerSummary", "LedgerSummaryCache"]
