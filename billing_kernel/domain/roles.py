"""
billing_kernel.domain.roles -- Actor identity and role gates.

Responsibility:
    Define the roles the business recognises, normalize legacy role names,
    and decide whether an actor may perform an action.  The allowed role
    sets themselves live in ``billing_config``; this module only evaluates
    them.

Architecture position:
    Kernel > Domain.  Pure, zero I/O.

Invariants:
    - Authentication is out of scope: the caller supplies the actor's role.
    - Role checks run before the first mutation of a unit of work, so an
      AuthorizationError is never partially applied.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from billing_kernel.exceptions import AuthorizationError


class Role(str, Enum):
    OWNER = "owner"
    OFFICE = "office"
    TEAM_LEAD = "team_lead"
    SALES_REP = "sales_rep"
    FIELD_CREW = "field_crew"


@dataclass(frozen=True)
class Actor:
    """The caller of an operation: who they are and the role they act under."""

    actor_id: UUID
    role: str

    def __post_init__(self) -> None:
        if not isinstance(self.actor_id, UUID):
            raise TypeError("Actor.actor_id must be a UUID")


def normalize_role(role: str, aliases: Mapping[str, str] | None = None) -> str:
    """
    Map a raw role string to its canonical name.

    ``aliases`` maps legacy names (``admin``, ``project_manager``) to the
    canonical role.  Unknown roles are returned lower-cased and unchanged;
    they simply fail every gate.
    """
    key = (role or "").strip().lower()
    if aliases:
        key = aliases.get(key, key)
    return key


def is_allowed(
    role: str,
    allowed_roles: Iterable[str],
    aliases: Mapping[str, str] | None = None,
) -> bool:
    return normalize_role(role, aliases) in frozenset(allowed_roles)


def check_role(
    actor: Actor,
    action: str,
    allowed_roles: Iterable[str],
    aliases: Mapping[str, str] | None = None,
) -> str:
    """
    Require that ``actor`` may perform ``action``.

    Returns:
        The actor's canonical role.

    Raises:
        AuthorizationError: If the role is not in ``allowed_roles``.
    """
    allowed = tuple(sorted(allowed_roles))
    role = normalize_role(actor.role, aliases)
    if role not in allowed:
        raise AuthorizationError(role=role, action=action, allowed_roles=allowed)
    return role
