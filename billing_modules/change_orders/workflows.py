"""
Change Order Workflows.

A change order is decided once.  The decision can only be undone by an
explicit reset, and never after the order has been billed.
"""

from billing_kernel.domain.workflow import Guard, Transition, Workflow
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.change_orders.workflows")


NOT_BILLED = Guard(
    name="not_billed",
    description="Change order is not linked to an invoice",
)

CHANGE_ORDER_WORKFLOW = Workflow(
    name="change_order",
    description="Change order approval lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "rejected",
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "rejected", action="reject"),
        Transition("approved", "pending", action="reset", guard=NOT_BILLED),
        Transition("rejected", "pending", action="reset"),
    ),
)

logger.info(
    "change_order_workflow_registered",
    extra={
        "workflow": CHANGE_ORDER_WORKFLOW.name,
        "transition_count": len(CHANGE_ORDER_WORKFLOW.transitions),
    },
)
