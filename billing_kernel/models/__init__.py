"""Kernel ORM models shared by every billing module."""

from billing_kernel.models.activity import ActivityType, JobActivity

__all__ = ["ActivityType", "JobActivity"]
