"""
Change Orders Module.

Scope changes recorded against a job after the base contract is set,
their approval lifecycle, and the approved-and-unbilled view that the
invoice generator bills from.
"""

from billing_modules.change_orders.models import (
    ChangeOrder,
    ChangeOrderStatus,
    ChangeOrderSummary,
    ChangeOrderType,
)
from billing_modules.change_orders.workflows import CHANGE_ORDER_WORKFLOW

__all__ = [
    "CHANGE_ORDER_WORKFLOW",
    "ChangeOrder",
    "ChangeOrderStatus",
    "ChangeOrderSummary",
    "ChangeOrderType",
]
