"""
helpdesk/models.py -- Domain dataclasses for tickets and organizations.

Pure data containers. Deadline arithmetic lives in core/sla.py; persistence
and the rules about when a deadline is (re)computed live in helpdesk/store.py.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

TICKET_CATEGORIES: tuple[str, ...] = (
    "hardware",
    "software",
    "network",
    "accounts",
    "email",
    "system",
    "phishing",
    "malware",
    "suspicious_login",
    "siem_alert",
    "vulnerability",
    "incident_response",
    "compliance",
)


@dataclass
class Organization:
    """A tenant. sla_hours is None until the tenant overrides the default policy.

    id is None before the record is written to the database.
    """

    name: str
    domain: str = ""
    is_active: bool = True
    sla_hours: Optional[dict[str, int]] = None
    categories: list[str] = field(default_factory=list)
    departments: list[str] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class Ticket:
    """A support or security ticket.

    sla_deadline is set by the store on insert from the tenant policy and
    only changes again when the priority is edited.
    """

    title: str
    description: str
    category: str
    priority: str  # "critical" | "high" | "medium" | "low"
    submitter_email: str
    organization_id: Optional[int] = None
    department: str = ""
    status: str = "open"
    ticket_number: str = ""
    assigned_to_email: Optional[str] = None
    sla_deadline: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class TicketNote:
    ticket_id: int
    content: str
    author_email: str
    is_internal: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class ActivityRecord:
    """Append-only audit entry. Written on every mutation, never updated or deleted."""

    action: str  # "CREATE" | "UPDATE_STATUS" | "UPDATE_PRIORITY" | "ASSIGN" | ...
    entity_type: str  # "ticket" | "organization"
    entity_id: int
    actor_email: Optional[str] = None
    details: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class TicketStats:
    total: int
    open: int
    in_progress: int
    resolved: int  # resolved + closed
    sla_breaches: int
    by_category: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    recent: list[Ticket] = field(default_factory=list)
