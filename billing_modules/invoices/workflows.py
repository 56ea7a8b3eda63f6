"""
Invoice Workflows.

An invoice is created fully formed in ``draft``; afterwards only its
status moves.  ``paid`` and ``cancelled`` are terminal.
"""

from billing_kernel.domain.workflow import Guard, Transition, Workflow
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.invoices.workflows")


PAST_DUE = Guard(
    name="past_due",
    description="Invoice due date is before the as-of date",
)

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Job invoice lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "sent",
        "paid",
        "overdue",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "sent", action="send"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("sent", "paid", action="mark_paid"),
        Transition("sent", "overdue", action="mark_overdue", guard=PAST_DUE),
        Transition("sent", "cancelled", action="cancel"),
        Transition("overdue", "paid", action="mark_paid"),
        Transition("overdue", "cancelled", action="cancel"),
    ),
    terminal_states=("paid", "cancelled"),
)

# Target status -> workflow action, for status updates addressed by status
STATUS_ACTIONS: dict[str, str] = {
    "draft": "reopen",
    "sent": "send",
    "paid": "mark_paid",
    "overdue": "mark_overdue",
    "cancelled": "cancel",
}

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow": INVOICE_WORKFLOW.name,
        "transition_count": len(INVOICE_WORKFLOW.transitions),
    },
)
