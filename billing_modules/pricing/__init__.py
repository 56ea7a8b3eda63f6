"""
Pricing Module.

The proposal price per square, its approval state machine and the
resulting base contract value.
"""

from billing_modules.pricing.models import PriceStatus
from billing_modules.pricing.workflows import PRICE_WORKFLOW

__all__ = ["PRICE_WORKFLOW", "PriceStatus"]
