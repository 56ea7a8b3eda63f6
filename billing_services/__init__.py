"""
Billing services -- the procedure surface over the billing modules.

Callers (an HTTP layer, a CLI, tests) dispatch named procedures with
dollar-denominated payloads; the modules underneath work in cents.
"""

from billing_services.procedures import BillingProcedures, error_payload

__all__ = ["BillingProcedures", "error_payload"]
