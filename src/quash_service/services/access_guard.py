"""Per-request access decisions over a task and its offers.

Stateless predicates only; callers load the task and offers and pass them in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

Role = Literal["owner", "hired"]

TASK_STATUSES = frozenset(
    {"open", "closed", "inProgress", "deadlineUpdated", "completed", "cancelled", "conflict"}
)

# Bidding is closed (no new offers, no acceptance) once a task reaches these.
# A task that already has an accepted offer is closed whatever its status.
BIDDING_CLOSED_STATUSES = frozenset({"inProgress", "completed", "cancelled"})

# Statuses that advertise a task for bidding; unreachable once someone is hired.
PRE_HIRE_STATUSES = frozenset({"open", "closed"})

# Statuses a caller may move a task to through update_task, by role and
# current status. Anything absent is refused. inProgress is otherwise only
# entered by accepting an offer.
STATUS_TRANSITIONS: dict[Role, dict[str, frozenset[str]]] = {
    "owner": {
        "open": frozenset({"closed", "deadlineUpdated", "cancelled"}),
        "closed": frozenset({"open", "cancelled"}),
        "deadlineUpdated": frozenset({"open", "closed", "cancelled"}),
        "inProgress": frozenset({"deadlineUpdated", "completed", "conflict"}),
        "conflict": frozenset({"completed", "cancelled"}),
    },
    "hired": {
        "inProgress": frozenset({"conflict"}),
        "deadlineUpdated": frozenset({"inProgress", "conflict"}),
    },
}


def is_owner(task: Mapping[str, object], user_id: str) -> bool:
    """True if user_id posted the task."""
    return task["owner_id"] == user_id


def is_hired_quasher(
    task: Mapping[str, object],
    user_id: str,
    offers: Iterable[Mapping[str, object]],
) -> bool:
    """True if user_id holds an accepted offer on this task."""
    return any(
        offer["task_id"] == task["task_id"]
        and offer["user_id"] == user_id
        and offer["status"] == "accepted"
        for offer in offers
    )


def resolve_role(
    task: Mapping[str, object],
    user_id: str,
    offers: Iterable[Mapping[str, object]],
) -> Role | None:
    """Return the caller's role on the task, owner taking precedence."""
    if is_owner(task, user_id):
        return "owner"
    if is_hired_quasher(task, user_id, offers):
        return "hired"
    return None


def has_accepted_offer(task: Mapping[str, object], offers: Iterable[Mapping[str, object]]) -> bool:
    """True if any offer on the task has been accepted."""
    return any(
        offer["task_id"] == task["task_id"] and offer["status"] == "accepted" for offer in offers
    )


def is_bidding_open(task: Mapping[str, object], offers: Iterable[Mapping[str, object]]) -> bool:
    """True while the task still accepts and can award offers."""
    if task["status"] in BIDDING_CLOSED_STATUSES:
        return False
    return not has_accepted_offer(task, offers)


def is_status_transition_allowed(
    role: Role, current: str, target: str, *, hired: bool = False
) -> bool:
    """
    Check the per-role transition table; staying put is always allowed.

    Once the task has a hired quasher it can no longer go back to a
    pre-hire status.
    """
    if current == target:
        return True
    if hired and target in PRE_HIRE_STATUSES:
        return False
    return target in STATUS_TRANSITIONS[role].get(current, frozenset())
