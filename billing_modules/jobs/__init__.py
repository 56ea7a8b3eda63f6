"""
Jobs Module.

The job register: one row per contracted job, carrying the agreed price,
its approval state and the collected-cash total.
"""

from billing_modules.jobs.models import DealType, Job

__all__ = ["DealType", "Job"]
