"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BillingError:

    BillingError (base)
    |
    +-- ValidationError
    |   +-- PriceBelowFloorError
    |
    +-- ConflictError
    |   +-- InvalidTransitionError
    |   +-- ChangeOrderAlreadyBilledError
    |
    +-- AuthorizationError
    |
    +-- NotFoundError
    |   +-- JobNotFoundError
    |   +-- ChangeOrderNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- ImmutabilityViolationError
    +-- ProcedureNotFoundError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Bad input; nothing was written
                | PRICE_BELOW_FLOOR           | Price or counter below the hard floor
----------------|-----------------------------|-----------------------------------------
Conflict        | CONFLICT                    | Entity state forbids the request
                | INVALID_TRANSITION          | No workflow transition for (state, action)
                | CHANGE_ORDER_ALREADY_BILLED | Change order already linked to an invoice
----------------|-----------------------------|-----------------------------------------
Authorization   | NOT_AUTHORIZED              | Role not permitted for the transition
----------------|-----------------------------|-----------------------------------------
Lookup          | JOB_NOT_FOUND               | Job id doesn't exist
                | CHANGE_ORDER_NOT_FOUND      | Change order id doesn't exist
                | INVOICE_NOT_FOUND           | Invoice id doesn't exist
                | PAYMENT_NOT_FOUND           | Payment id doesn't exist
----------------|-----------------------------|-----------------------------------------
Integrity       | IMMUTABILITY_VIOLATION      | ORM write against frozen money fields
----------------|-----------------------------|-----------------------------------------
Surface         | PROCEDURE_NOT_FOUND         | Unknown procedure name
                | CONFIGURATION_ERROR         | Billing config failed validation

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH BY TYPE, READ STRUCTURED FIELDS:

    try:
        ledger.approve(change_order_id, actor)
    except ConflictError as e:
        resync_ui(e.entity_type, e.entity_id, e.current_state)

2. VALIDATION ERRORS ARE ALWAYS RAISED BEFORE ANY WRITE:
   The caller may correct the input and resubmit.

3. AUTHORIZATION ERRORS ARE NEVER PARTIALLY APPLIED:
   Role checks run before the first mutation of the unit of work.
"""


class BillingError(Exception):
    """
    Base exception for all billing errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_ERROR"


# Validation


class ValidationError(BillingError):
    """Input rejected before any write. Safe to retry after correction."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class PriceBelowFloorError(ValidationError):
    """Price per square below the hard pricing floor."""

    code: str = "PRICE_BELOW_FLOOR"

    def __init__(self, price_cents: int, floor_cents: int, field: str = "price_per_square"):
        self.price_cents = price_cents
        self.floor_cents = floor_cents
        super().__init__(
            f"{field} {price_cents / 100:.2f} is below the minimum of "
            f"{floor_cents / 100:.2f}",
            field=field,
        )


# Conflict


class ConflictError(BillingError):
    """
    The entity's current state forbids the request.

    Carries the current state so callers can resynchronize.
    """

    code: str = "CONFLICT"

    def __init__(
        self,
        message: str,
        entity_type: str,
        entity_id: str,
        current_state: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        super().__init__(message)


class InvalidTransitionError(ConflictError):
    """No transition exists for the action from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        workflow: str,
        action: str,
        entity_type: str,
        entity_id: str,
        current_state: str,
    ):
        self.workflow = workflow
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: "
            f"{workflow} is in state '{current_state}'",
            entity_type=entity_type,
            entity_id=entity_id,
            current_state=current_state,
        )


class ChangeOrderAlreadyBilledError(ConflictError):
    """Change order is already linked to an invoice."""

    code: str = "CHANGE_ORDER_ALREADY_BILLED"

    def __init__(self, change_order_id: str, invoice_id: str, operation: str = "bill"):
        self.invoice_id = invoice_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} change order {change_order_id}: "
            f"already billed on invoice {invoice_id}",
            entity_type="ChangeOrder",
            entity_id=change_order_id,
            current_state="billed",
        )


# Authorization


class AuthorizationError(BillingError):
    """Role not permitted for the requested transition."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, role: str, action: str, allowed_roles: tuple[str, ...] = ()):
        self.role = role
        self.action = action
        self.allowed_roles = allowed_roles
        allowed = ", ".join(allowed_roles) if allowed_roles else "none"
        super().__init__(
            f"Role '{role}' may not {action} (allowed: {allowed})"
        )


# Lookups


class NotFoundError(BillingError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class JobNotFoundError(NotFoundError):
    code: str = "JOB_NOT_FOUND"
    entity_type: str = "Job"


class ChangeOrderNotFoundError(NotFoundError):
    code: str = "CHANGE_ORDER_NOT_FOUND"
    entity_type: str = "ChangeOrder"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity_type: str = "Invoice"


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity_type: str = "Payment"


# Integrity


class ImmutabilityViolationError(BillingError):
    """Attempted to modify or delete a frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Surface


class ProcedureNotFoundError(BillingError):
    """Unknown procedure name."""

    code: str = "PROCEDURE_NOT_FOUND"

    def __init__(self, procedure: str):
        self.procedure = procedure
        super().__init__(f"Unknown procedure: {procedure}")


class ConfigurationError(BillingError):
    """Billing configuration failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)
