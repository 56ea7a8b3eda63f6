"""
Pricing Workflows.

State machine for the proposal price.  ``approved`` is the practical
terminal state; the only way back to ``draft`` is an explicit denial of a
counter offer.
"""

from billing_kernel.domain.workflow import Guard, Transition, Workflow
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.pricing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ABOVE_FLOOR = Guard(
    name="above_floor",
    description="Price per square is at or above the pricing floor",
)

AT_AUTO_APPROVE_THRESHOLD = Guard(
    name="at_auto_approve_threshold",
    description="Price per square is at or above the auto-approval threshold",
)

APPROVER_OVERRIDE = Guard(
    name="approver_override",
    description="Caller holds an approver role and requested an override",
)

SUBMITTER_ROLE = Guard(
    name="submitter_role",
    description="Caller acts under the role that submitted the price",
)


# -----------------------------------------------------------------------------
# Price workflow
# -----------------------------------------------------------------------------

PRICE_STATES = (
    "draft",
    "pending_approval",
    "negotiation",
    "approved",
)

PRICE_TRANSITIONS = (
    Transition("draft", "pending_approval", action="submit", guard=ABOVE_FLOOR),
    Transition("draft", "approved", action="auto_approve", guard=AT_AUTO_APPROVE_THRESHOLD),
    Transition("draft", "approved", action="override", guard=APPROVER_OVERRIDE),
    Transition("pending_approval", "approved", action="approve"),
    Transition("pending_approval", "approved", action="override", guard=APPROVER_OVERRIDE),
    Transition("pending_approval", "negotiation", action="counter", guard=ABOVE_FLOOR),
    Transition("negotiation", "approved", action="accept_counter", guard=SUBMITTER_ROLE),
    Transition("negotiation", "draft", action="deny_counter"),
)

PRICE_WORKFLOW = Workflow(
    name="price",
    description="Proposal price approval",
    initial_state="draft",
    states=PRICE_STATES,
    transitions=PRICE_TRANSITIONS,
    terminal_states=("approved",),
)

logger.info(
    "pricing_workflows_registered",
    extra={
        "workflow": PRICE_WORKFLOW.name,
        "state_count": len(PRICE_STATES),
        "transition_count": len(PRICE_TRANSITIONS),
    },
)
