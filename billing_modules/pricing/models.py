"""Pricing Domain Models (``billing_modules.pricing.models``)."""

from enum import Enum


class PriceStatus(str, Enum):
    """Proposal price lifecycle states."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    NEGOTIATION = "negotiation"
    APPROVED = "approved"
