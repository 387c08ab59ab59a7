"""
helpdesk/store.py -- SQLAlchemy Core persistence layer for tickets and tenants.

Pattern: Repository + Data Mapper (same as cmdb/store.py). HelpdeskStore is
the repository; the _row_to_* functions are the mappers. Route handlers never
touch SQL directly.

SLA rules owned here (arithmetic is core/sla.py's):
  - sla_deadline is computed once, on insert, from the tenant's policy.
  - A priority edit recomputes it from the edit time (core.sla.recompute_deadline).
  - Nothing else ever rewrites it.

This store is also the organization/SLA-policy provider: get_sla_policy()
returns the tenant override, or the deployment default when there is none.

"now" is always a parameter. The API passes its injected clock, tests pass a
fixed instant.

Timestamps are stored as UTC ISO 8601 strings so lexical order is time order.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = HelpdeskStore("sqlite:///:memory:")
    org_id = store.create_organization(Organization(name="SOC Alpha"), now)
    ticket = store.create_ticket(Ticket(...), now)
    store.update_priority(ticket.id, "critical", now, actor_email="lead@example.com")
    store.close()
"""

import json
import logging
import secrets
import string
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.errors import InvalidStatus, MalformedEmail
from core.models import BREACHED, TERMINAL_STATUSES, TICKET_STATUSES
from core.netaddr import is_valid_email
from core.sla import (
    DEFAULT_POLICY,
    DEFAULT_WARNING_WINDOW,
    breach_state,
    compute_deadline,
    recompute_deadline,
    validate_policy,
)
from helpdesk.models import ActivityRecord, Organization, Ticket, TicketNote, TicketStats

logger = logging.getLogger("secdesk.helpdesk")

_DEFAULT_DB_URL = "sqlite:///secdesk_helpdesk.db"

_TICKET_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
_TICKET_NUMBER_ATTEMPTS = 5

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_organizations = Table(
    "organizations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("domain", String(255), nullable=False, server_default=""),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("sla_hours", Text),  # JSON object, NULL = deployment default
    Column("categories", Text),  # JSON array
    Column("departments", Text),  # JSON array
    Column("created_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

_tickets = Table(
    "tickets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ticket_number", String(20), nullable=False, unique=True),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("category", String(50), nullable=False),
    Column("priority", String(10), nullable=False),
    Column("status", String(20), nullable=False, server_default="open"),
    Column("organization_id", Integer),
    Column("department", String(100), nullable=False, server_default=""),
    Column("submitter_email", String(255), nullable=False),
    Column("assigned_to_email", String(255)),
    Column("sla_deadline", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("resolved_at", String(32)),
    sqlite_autoincrement=True,
)

_notes = Table(
    "ticket_notes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ticket_id", Integer, nullable=False),
    Column("content", Text, nullable=False),
    Column("author_email", String(255), nullable=False),
    Column("is_internal", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

_activity = Table(
    "activity_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("actor_email", String(255)),
    Column("action", String(30), nullable=False),
    Column("entity_type", String(30), nullable=False),
    Column("entity_id", Integer, nullable=False),
    Column("details", Text),  # JSON object
    Column("created_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

# SQL-side sort key for priority ordering (critical first when descending).
_PRIORITY_SORT = case(
    {"critical": 4, "high": 3, "medium": 2, "low": 1},
    value=_tickets.c.priority,
    else_=0,
)

_SORT_COLUMNS = {
    "created": _tickets.c.created_at,
    "updated": _tickets.c.updated_at,
    "priority": _PRIORITY_SORT,
    "sla": _tickets.c.sla_deadline,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(ts: Optional[datetime]) -> Optional[str]:
    """Serialize to a UTC ISO string. Naive datetimes are taken as UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _new_ticket_number(now: datetime) -> str:
    suffix = "".join(secrets.choice(_TICKET_NUMBER_ALPHABET) for _ in range(6))
    return f"TKT-{now.year}-{suffix}"


def _check_email(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not is_valid_email(value):
        raise MalformedEmail(f"'{value[:64]}' is not a valid email address.", field)
    return value


def _check_status(status: str) -> str:
    if status not in TICKET_STATUSES:
        raise InvalidStatus(f"Unknown ticket status {status!r}. Use one of: {', '.join(TICKET_STATUSES)}.", "status")
    return status


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class HelpdeskStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL, default_policy: Optional[Mapping[str, int]] = None) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool, so a pooled SQLite
            # connection may be used from a thread other than its creator.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self.default_policy: dict[str, int] = validate_policy(default_policy or DEFAULT_POLICY)

    # ------------------------------------------------------------------
    # Organizations / SLA policy provider
    # ------------------------------------------------------------------

    def create_organization(self, org: Organization, now: datetime, actor_email: Optional[str] = None) -> int:
        """Insert an organization and return its ID.

        A supplied sla_hours override is validated as a complete policy.
        Raises sqlalchemy.exc.IntegrityError if the name is already taken.
        """
        sla_hours = validate_policy(org.sla_hours) if org.sla_hours is not None else None
        with self.engine.connect() as conn:
            result = conn.execute(
                _organizations.insert().values(
                    name=org.name.strip(),
                    domain=org.domain.strip(),
                    is_active=1 if org.is_active else 0,
                    sla_hours=json.dumps(sla_hours) if sla_hours is not None else None,
                    categories=json.dumps(org.categories),
                    departments=json.dumps(org.departments),
                    created_at=_iso(now),
                )
            )
            org_id = result.inserted_primary_key[0]
            self._log(conn, actor_email, "CREATE", "organization", org_id, {"name": org.name.strip()}, now)
            conn.commit()
        logger.info("Organization %d created (%s)", org_id, org.name.strip())
        return org_id

    def get_organization(self, org_id: int) -> Optional[Organization]:
        with self.engine.connect() as conn:
            row = conn.execute(_organizations.select().where(_organizations.c.id == org_id)).fetchone()
        return _row_to_org(row) if row is not None else None

    def list_organizations(self) -> list[Organization]:
        with self.engine.connect() as conn:
            rows = conn.execute(_organizations.select().order_by(_organizations.c.name)).fetchall()
        return [_row_to_org(r) for r in rows]

    def update_sla_policy(
        self,
        org_id: int,
        policy: Optional[Mapping[str, int]],
        now: datetime,
        actor_email: Optional[str] = None,
    ) -> bool:
        """Set (or with policy=None, clear) a tenant's SLA override.

        Existing ticket deadlines are not touched; the new policy applies to
        tickets created, or re-prioritized, from now on.
        Returns False if the organization does not exist.
        """
        validated = validate_policy(policy) if policy is not None else None
        with self.engine.connect() as conn:
            result = conn.execute(
                _organizations.update()
                .where(_organizations.c.id == org_id)
                .values(sla_hours=json.dumps(validated) if validated is not None else None)
            )
            if result.rowcount == 0:
                conn.commit()
                return False
            self._log(conn, actor_email, "UPDATE_SLA_POLICY", "organization", org_id, {"sla_hours": validated}, now)
            conn.commit()
        logger.info("SLA policy for organization %d set to %s", org_id, validated or "default")
        return True

    def get_sla_policy(self, org_id: Optional[int]) -> dict[str, int]:
        """Return the policy in force for a tenant.

        Falls back to the deployment default when org_id is None, unknown, or
        has no override.
        """
        if org_id is None:
            return dict(self.default_policy)
        org = self.get_organization(org_id)
        if org is None or org.sla_hours is None:
            return dict(self.default_policy)
        return dict(org.sla_hours)

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    def create_ticket(self, ticket: Ticket, now: datetime, actor_email: Optional[str] = None) -> Ticket:
        """Insert a ticket, stamping its number and SLA deadline, and return the stored record.

        The deadline comes from the tenant policy at creation time. A
        caller-supplied ticket_number or sla_deadline is ignored.
        Raises InvalidPriority / IncompletePolicy from the SLA engine,
        MalformedEmail for a bad submitter or assignee address and
        InvalidStatus for an unknown status.
        """
        _check_status(ticket.status)
        policy = self.get_sla_policy(ticket.organization_id)
        deadline = compute_deadline(ticket.priority, now, policy)
        submitter = _check_email(ticket.submitter_email, "submitter_email")
        if submitter is None:
            raise MalformedEmail("A submitter email is required.", "submitter_email")
        assignee = _check_email(ticket.assigned_to_email, "assigned_to_email")
        resolved_at = _iso(now) if ticket.status in TERMINAL_STATUSES else None

        for attempt in range(1, _TICKET_NUMBER_ATTEMPTS + 1):
            number = _new_ticket_number(now)
            try:
                with self.engine.connect() as conn:
                    result = conn.execute(
                        _tickets.insert().values(
                            ticket_number=number,
                            title=ticket.title.strip(),
                            description=ticket.description.strip(),
                            category=ticket.category,
                            priority=ticket.priority,
                            status=ticket.status,
                            organization_id=ticket.organization_id,
                            department=ticket.department.strip(),
                            submitter_email=submitter,
                            assigned_to_email=assignee,
                            sla_deadline=_iso(deadline),
                            created_at=_iso(now),
                            updated_at=_iso(now),
                            resolved_at=resolved_at,
                        )
                    )
                    ticket_id = result.inserted_primary_key[0]
                    self._log(
                        conn,
                        actor_email or submitter,
                        "CREATE",
                        "ticket",
                        ticket_id,
                        {"ticket_number": number, "title": ticket.title.strip()},
                        now,
                    )
                    conn.commit()
            except IntegrityError:
                # Ticket number collision; 36^6 numbers per year makes a second one unlikely.
                logger.warning("Ticket number %s already taken (attempt %d)", number, attempt)
                continue
            logger.info("Ticket %s created, priority=%s, due %s", number, ticket.priority, _iso(deadline))
            return self.get_ticket(ticket_id)
        raise RuntimeError(f"Could not allocate a unique ticket number after {_TICKET_NUMBER_ATTEMPTS} attempts")

    def get_ticket(self, ticket_id: int) -> Optional[Ticket]:
        with self.engine.connect() as conn:
            row = conn.execute(_tickets.select().where(_tickets.c.id == ticket_id)).fetchone()
        return _row_to_ticket(row) if row is not None else None

    def get_ticket_by_number(self, ticket_number: str) -> Optional[Ticket]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _tickets.select().where(_tickets.c.ticket_number == ticket_number.strip().upper())
            ).fetchone()
        return _row_to_ticket(row) if row is not None else None

    def list_tickets(
        self,
        organization_id: Optional[int] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        submitter_email: Optional[str] = None,
        assigned_to_email: Optional[str] = None,
        sort: str = "created",
        descending: bool = True,
    ) -> list[Ticket]:
        """Return tickets matching every given filter.

        sort: "created" | "updated" | "priority" | "sla". Ties fall back to id.
        Raises ValueError for an unknown sort key.
        """
        if sort not in _SORT_COLUMNS:
            raise ValueError(f"Unknown sort key '{sort}'. Use one of: {', '.join(_SORT_COLUMNS)}")
        stmt = _tickets.select()
        filters = {
            _tickets.c.organization_id: organization_id,
            _tickets.c.status: status,
            _tickets.c.priority: priority,
            _tickets.c.category: category,
            _tickets.c.submitter_email: submitter_email,
            _tickets.c.assigned_to_email: assigned_to_email,
        }
        for column, value in filters.items():
            if value is not None:
                stmt = stmt.where(column == value)
        key = _SORT_COLUMNS[sort]
        stmt = stmt.order_by(key.desc(), _tickets.c.id.desc()) if descending else stmt.order_by(key, _tickets.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_ticket(r) for r in rows]

    def update_status(
        self,
        ticket_id: int,
        status: str,
        now: datetime,
        actor_email: Optional[str] = None,
    ) -> Optional[Ticket]:
        """Change a ticket's status and return the updated record (None if not found).

        Entering resolved/closed stamps resolved_at (kept when moving between
        the two); leaving them clears it. The SLA deadline is not touched.
        """
        _check_status(status)
        current = self.get_ticket(ticket_id)
        if current is None:
            return None
        if status in TERMINAL_STATUSES:
            resolved_at = current.resolved_at or now
        else:
            resolved_at = None
        with self.engine.connect() as conn:
            conn.execute(
                _tickets.update()
                .where(_tickets.c.id == ticket_id)
                .values(status=status, updated_at=_iso(now), resolved_at=_iso(resolved_at))
            )
            self._log(
                conn, actor_email, "UPDATE_STATUS", "ticket", ticket_id, {"from": current.status, "to": status}, now
            )
            conn.commit()
        logger.info("Ticket %s status %s -> %s", current.ticket_number, current.status, status)
        return self.get_ticket(ticket_id)

    def update_priority(
        self,
        ticket_id: int,
        priority: str,
        now: datetime,
        actor_email: Optional[str] = None,
    ) -> Optional[Ticket]:
        """Change priority and restart the SLA clock from now under the tenant policy.

        Returns the updated ticket, or None if it does not exist.
        """
        current = self.get_ticket(ticket_id)
        if current is None:
            return None
        deadline = recompute_deadline(priority, now, self.get_sla_policy(current.organization_id))
        with self.engine.connect() as conn:
            conn.execute(
                _tickets.update()
                .where(_tickets.c.id == ticket_id)
                .values(priority=priority, sla_deadline=_iso(deadline), updated_at=_iso(now))
            )
            self._log(
                conn,
                actor_email,
                "UPDATE_PRIORITY",
                "ticket",
                ticket_id,
                {"from": current.priority, "to": priority, "sla_deadline": _iso(deadline)},
                now,
            )
            conn.commit()
        logger.info(
            "Ticket %s priority %s -> %s, deadline now %s",
            current.ticket_number,
            current.priority,
            priority,
            _iso(deadline),
        )
        return self.get_ticket(ticket_id)

    def assign_ticket(
        self,
        ticket_id: int,
        assignee_email: Optional[str],
        now: datetime,
        actor_email: Optional[str] = None,
    ) -> Optional[Ticket]:
        """Assign (or with None, unassign) a ticket. Returns None if not found."""
        assignee = _check_email(assignee_email, "assigned_to_email")
        with self.engine.connect() as conn:
            result = conn.execute(
                _tickets.update()
                .where(_tickets.c.id == ticket_id)
                .values(assigned_to_email=assignee, updated_at=_iso(now))
            )
            if result.rowcount == 0:
                conn.commit()
                return None
            self._log(conn, actor_email, "ASSIGN", "ticket", ticket_id, {"assigned_to": assignee}, now)
            conn.commit()
        return self.get_ticket(ticket_id)

    def add_note(
        self,
        ticket_id: int,
        content: str,
        author_email: str,
        now: datetime,
        is_internal: bool = False,
    ) -> Optional[TicketNote]:
        """Append a comment (or internal note) and bump the ticket's updated_at."""
        author = _check_email(author_email, "author_email")
        if author is None:
            raise MalformedEmail("An author email is required.", "author_email")
        if self.get_ticket(ticket_id) is None:
            return None
        with self.engine.connect() as conn:
            result = conn.execute(
                _notes.insert().values(
                    ticket_id=ticket_id,
                    content=content.strip(),
                    author_email=author,
                    is_internal=1 if is_internal else 0,
                    created_at=_iso(now),
                )
            )
            note_id = result.inserted_primary_key[0]
            conn.execute(_tickets.update().where(_tickets.c.id == ticket_id).values(updated_at=_iso(now)))
            self._log(
                conn,
                author,
                "ADD_INTERNAL_NOTE" if is_internal else "ADD_COMMENT",
                "ticket",
                ticket_id,
                {"content_length": len(content.strip())},
                now,
            )
            conn.commit()
        return TicketNote(
            id=note_id,
            ticket_id=ticket_id,
            content=content.strip(),
            author_email=author,
            is_internal=is_internal,
            created_at=now,
        )

    def list_notes(self, ticket_id: int, include_internal: bool = True) -> list[TicketNote]:
        """Return notes for a ticket, oldest first."""
        stmt = _notes.select().where(_notes.c.ticket_id == ticket_id)
        if not include_internal:
            stmt = stmt.where(_notes.c.is_internal == 0)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_notes.c.created_at, _notes.c.id)).fetchall()
        return [_row_to_note(r) for r in rows]

    def delete_ticket(self, ticket_id: int, now: datetime, actor_email: Optional[str] = None) -> bool:
        """Delete a ticket and its notes. The activity log keeps the DELETE entry."""
        with self.engine.connect() as conn:
            conn.execute(_notes.delete().where(_notes.c.ticket_id == ticket_id))
            result = conn.execute(_tickets.delete().where(_tickets.c.id == ticket_id))
            if result.rowcount == 0:
                conn.rollback()
                return False
            self._log(conn, actor_email, "DELETE", "ticket", ticket_id, {}, now)
            conn.commit()
        logger.info("Ticket %d deleted by %s", ticket_id, actor_email or "unknown")
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def ticket_stats(
        self,
        now: datetime,
        organization_id: Optional[int] = None,
        warning_window: timedelta = DEFAULT_WARNING_WINDOW,
    ) -> TicketStats:
        """Counts for the helpdesk dashboard.

        sla_breaches uses core.sla.breach_state, so resolved and closed
        tickets never count as breached.
        """
        tickets = self.list_tickets(organization_id=organization_id, sort="created", descending=True)
        statuses = Counter(t.status for t in tickets)
        breaches = sum(1 for t in tickets if breach_state(t.sla_deadline, now, t.status, warning_window) == BREACHED)
        return TicketStats(
            total=len(tickets),
            open=statuses["open"],
            in_progress=statuses["in_progress"],
            resolved=statuses["resolved"] + statuses["closed"],
            sla_breaches=breaches,
            by_category=dict(Counter(t.category for t in tickets)),
            by_priority=dict(Counter(t.priority for t in tickets)),
            recent=tickets[:5],
        )

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def _log(
        self,
        conn,
        actor_email: Optional[str],
        action: str,
        entity_type: str,
        entity_id: int,
        details: dict,
        now: datetime,
    ) -> None:
        """Append an activity record on the caller's connection, inside its transaction."""
        conn.execute(
            _activity.insert().values(
                actor_email=actor_email,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=json.dumps(details),
                created_at=_iso(now),
            )
        )

    def list_activity(self, entity_type: Optional[str] = None, entity_id: Optional[int] = None) -> list[ActivityRecord]:
        """Return activity records, oldest first, optionally for one entity."""
        stmt = _activity.select()
        if entity_type is not None:
            stmt = stmt.where(_activity.c.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(_activity.c.entity_id == entity_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_activity.c.id)).fetchall()
        return [_row_to_activity(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(_organizations.select().limit(1)).fetchall()
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_org(row) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        domain=row.domain,
        is_active=bool(row.is_active),
        sla_hours=json.loads(row.sla_hours) if row.sla_hours else None,
        categories=json.loads(row.categories) if row.categories else [],
        departments=json.loads(row.departments) if row.departments else [],
        created_at=_parse_ts(row.created_at),
    )


def _row_to_ticket(row) -> Ticket:
    return Ticket(
        id=row.id,
        ticket_number=row.ticket_number,
        title=row.title,
        description=row.description,
        category=row.category,
        priority=row.priority,
        status=row.status,
        organization_id=row.organization_id,
        department=row.department or "",
        submitter_email=row.submitter_email,
        assigned_to_email=row.assigned_to_email,
        sla_deadline=_parse_ts(row.sla_deadline),
        created_at=_parse_ts(row.created_at),
        updated_at=_parse_ts(row.updated_at),
        resolved_at=_parse_ts(row.resolved_at),
    )


def _row_to_note(row) -> TicketNote:
    return TicketNote(
        id=row.id,
        ticket_id=row.ticket_id,
        content=row.content,
        author_email=row.author_email,
        is_internal=bool(row.is_internal),
        created_at=_parse_ts(row.created_at),
    )


def _row_to_activity(row) -> ActivityRecord:
    return ActivityRecord(
        id=row.id,
        actor_email=row.actor_email,
        action=row.action,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        details=json.loads(row.details) if row.details else {},
        created_at=_parse_ts(row.created_at),
    )
