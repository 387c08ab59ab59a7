"""
core/sla.py -- SLA deadline arithmetic and breach classification.

Every ticket screen needs the same three answers: when is this ticket due,
how long until (or since) then, and is it breached. They are computed here
and nowhere else.

Inputs are explicit. The per-tenant policy comes from the caller (see
helpdesk/store.HelpdeskStore.get_sla_policy) and "now" is always passed in,
never read from the system clock, so every function is deterministic.

Timestamps are absolute instants. A naive datetime is read as UTC when it has
to be compared with another timestamp; compute_deadline() itself returns
created_at plus the budget without touching tzinfo.

Priority changes: the deadline is recomputed from the moment of the edit
(recompute_deadline), not from the original creation time.
"""

from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from core.errors import IncompletePolicy, InvalidPriority
from core.models import BREACHED, OK, PRIORITIES, TERMINAL_STATUSES, WARNING, TimeRemaining

# Response budget in whole hours per priority.
DEFAULT_POLICY: dict[str, int] = {
    "critical": 1,
    "high": 4,
    "medium": 24,
    "low": 72,
}

DEFAULT_WARNING_WINDOW = timedelta(hours=24)

_PRIORITY_RANK: dict[str, int] = {"critical": 4, "high": 3, "medium": 2, "low": 1}


def _check_priority(priority: str) -> str:
    if not isinstance(priority, str) or priority not in PRIORITIES:
        raise InvalidPriority(
            f"Priority must be one of {', '.join(PRIORITIES)}, got {str(priority)[:32]!r}.",
            "priority",
        )
    return priority


def _check_hours(priority: str, hours: object) -> int:
    if isinstance(hours, bool) or not isinstance(hours, int) or hours <= 0:
        raise IncompletePolicy(f"SLA hours for '{priority}' must be a positive integer, got {hours!r}.", "policy")
    return hours


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def priority_rank(priority: str) -> int:
    """Sort key: critical=4, high=3, medium=2, low=1."""
    return _PRIORITY_RANK[_check_priority(priority)]


def validate_policy(policy: Mapping[str, int]) -> dict[str, int]:
    """Return a complete policy in canonical priority order.

    Raises IncompletePolicy if any priority is missing or has a non-positive
    budget, InvalidPriority if the mapping names an unknown priority.
    """
    for key in policy:
        _check_priority(key)
    result: dict[str, int] = {}
    for priority in PRIORITIES:
        if priority not in policy:
            raise IncompletePolicy(f"SLA policy has no entry for '{priority}'.", "policy")
        result[priority] = _check_hours(priority, policy[priority])
    return result


def compute_deadline(priority: str, created_at: datetime, policy: Optional[Mapping[str, int]] = None) -> datetime:
    """Return created_at + policy[priority] hours.

    policy=None uses DEFAULT_POLICY. Only the entry for the requested
    priority has to be present.
    """
    _check_priority(priority)
    if policy is None:
        policy = DEFAULT_POLICY
    if priority not in policy:
        raise IncompletePolicy(f"SLA policy has no entry for '{priority}'.", "policy")
    hours = _check_hours(priority, policy[priority])
    return created_at + timedelta(hours=hours)


def recompute_deadline(
    new_priority: str,
    edited_at: datetime,
    policy: Optional[Mapping[str, int]] = None,
) -> datetime:
    """Deadline after a priority edit: the new budget runs from the edit time.

    The original creation-relative deadline is discarded.
    """
    return compute_deadline(new_priority, edited_at, policy)


def time_remaining(deadline: datetime, now: datetime) -> TimeRemaining:
    """Split the signed deadline distance into whole hours and minutes.

    The difference is floored to whole minutes first, so a deadline exactly
    at now is not overdue while one 30 seconds ago is overdue by 0h 1m.
    """
    diff = (_as_utc(deadline) - _as_utc(now)) // timedelta(minutes=1)
    hours, minutes = divmod(abs(diff), 60)
    return TimeRemaining(is_overdue=diff < 0, hours=hours, minutes=minutes)


def breach_state(
    deadline: datetime,
    now: datetime,
    status: str,
    warning_window: timedelta = DEFAULT_WARNING_WINDOW,
) -> str:
    """Classify a ticket as "breached", "warning" or "ok".

    Resolved and closed tickets are always "ok", even when they were
    resolved late. Otherwise a ticket is breached strictly after its
    deadline, and in warning while the deadline is at most warning_window away.
    """
    if status in TERMINAL_STATUSES:
        return OK
    deadline, now = _as_utc(deadline), _as_utc(now)
    if now > deadline:
        return BREACHED
    if deadline - now <= warning_window:
        return WARNING
    return OK


def format_time_remaining(remaining: TimeRemaining) -> str:
    """Render TimeRemaining the way the ticket lists show it."""
    if remaining.is_overdue:
        return f"Overdue by {remaining.hours}h {remaining.minutes}m"
    return f"{remaining.hours}h {remaining.minutes}m remaining"
