"""
Module ORM Registry (``billing_modules._orm_registry``).

Ensure all ORM models are imported so that ``Base.metadata`` contains their
table definitions before ``create_tables()`` runs.

MUST NOT be imported by ``billing_kernel`` at module level (the kernel
engine imports it lazily inside ``create_tables``).
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``billing_modules.*.orm`` module.

    This function is idempotent -- repeated calls are harmless.
    """
    # Kernel tables first (sequence counters, activity trail)
    import billing_kernel.models  # noqa: F401
    import billing_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import billing_modules.jobs.orm  # noqa: F401
    import billing_modules.change_orders.orm  # noqa: F401
    import billing_modules.invoices.orm  # noqa: F401
    import billing_modules.payments.orm  # noqa: F401
    # fmt: on
