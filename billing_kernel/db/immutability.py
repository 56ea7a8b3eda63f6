"""
ORM-Level Immutability Enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable                   | What may still change
------------------|----------------------------------|---------------------------
InvoiceModel      | ALWAYS (from creation)           | status, updated_* audit
                  |                                  | fields; never deleted
InvoiceLineModel  | ALWAYS (from creation)           | nothing; never deleted
PaymentModel      | ALWAYS (from creation)           | nothing; delete allowed
ChangeOrderModel  | After invoice_id is set (billed) | description, notes, audit
                  |                                  | fields; never deleted
JobActivity       | ALWAYS (from creation)           | nothing; never deleted

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Services never attempt these writes; the listeners catch code paths that
bypass the services.  ``updated_at``/``updated_by_id`` are audit metadata and
are always allowed to change.

===============================================================================
USAGE
===============================================================================

    from billing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once, after models are imported

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from billing_kernel.exceptions import ImmutabilityViolationError
from billing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields frozen on a change order once it is linked to an invoice
_BILLED_CHANGE_ORDER_FIELDS = ("invoice_id", "amount", "status", "job_id", "change_type")


def _changed_columns(target) -> list[str]:
    """Column attributes with pending net changes, audit fields excluded."""
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS
        and insp.attrs[attr.key].history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


def _check_invoice_update(mapper, connection, target):
    """Only the lifecycle status of an issued invoice may change."""
    for key in _changed_columns(target):
        if key != "status":
            _block(
                "Invoice", target, "UPDATE",
                f"Cannot modify field '{key}' on an issued invoice",
                field=key,
            )


def _check_invoice_delete(mapper, connection, target):
    _block(
        "Invoice", target, "DELETE",
        "Invoices cannot be deleted; cancel them instead",
    )


def _check_invoice_line_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "InvoiceLine", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on an invoice line",
            field=changed[0],
        )


def _check_invoice_line_delete(mapper, connection, target):
    _block("InvoiceLine", target, "DELETE", "Invoice lines cannot be deleted")


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def _check_payment_update(mapper, connection, target):
    """Payments are corrected by delete and re-record, never edited."""
    changed = _changed_columns(target)
    if changed:
        _block(
            "Payment", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a recorded payment",
            field=changed[0],
        )


# ---------------------------------------------------------------------------
# Change orders
# ---------------------------------------------------------------------------


def _was_billed(target) -> bool:
    """True when invoice_id was already set before this flush."""
    history = get_history(target, "invoice_id")
    if history.deleted:
        return history.deleted[0] is not None
    if history.added:
        # None -> invoice id is the billing link itself
        return False
    return target.invoice_id is not None


def _check_change_order_update(mapper, connection, target):
    if not _was_billed(target):
        return
    for key in _BILLED_CHANGE_ORDER_FIELDS:
        if get_history(target, key).has_changes():
            _block(
                "ChangeOrder", target, "UPDATE",
                f"Cannot modify field '{key}' on a billed change order",
                field=key,
            )


def _check_change_order_delete(mapper, connection, target):
    if target.invoice_id is not None:
        _block(
            "ChangeOrder", target, "DELETE",
            "Billed change orders cannot be deleted",
        )


# ---------------------------------------------------------------------------
# Activity trail
# ---------------------------------------------------------------------------


def _check_activity_update(mapper, connection, target):
    if _changed_columns(target):
        _block(
            "JobActivity", target, "UPDATE",
            "Activity records are append-only and cannot be modified",
        )


def _check_activity_delete(mapper, connection, target):
    _block(
        "JobActivity", target, "DELETE",
        "Activity records are append-only and cannot be deleted",
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _listeners():
    from billing_kernel.models.activity import JobActivity
    from billing_modules.change_orders.orm import ChangeOrderModel
    from billing_modules.invoices.orm import InvoiceLineModel, InvoiceModel
    from billing_modules.payments.orm import PaymentModel

    return (
        (InvoiceModel, "before_update", _check_invoice_update),
        (InvoiceModel, "before_delete", _check_invoice_delete),
        (InvoiceLineModel, "before_update", _check_invoice_line_update),
        (InvoiceLineModel, "before_delete", _check_invoice_line_delete),
        (PaymentModel, "before_update", _check_payment_update),
        (ChangeOrderModel, "before_update", _check_change_order_update),
        (ChangeOrderModel, "before_delete", _check_change_order_delete),
        (JobActivity, "before_update", _check_activity_update),
        (JobActivity, "before_delete", _check_activity_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener already registered is not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
