"""
api/routes/v1/tickets.py -- Helpdesk ticket routes for the SecDesk REST API.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /tickets                          -- open a ticket (deadline stamped here)
  GET    /tickets                          -- list with filters and sort
  GET    /tickets/export.csv               -- CSV export of the filtered list
  GET    /tickets/{ticket_id}              -- detail with SLA view
  PATCH  /tickets/{ticket_id}/status       -- change status
  PATCH  /tickets/{ticket_id}/priority     -- change priority (restarts the SLA clock)
  PATCH  /tickets/{ticket_id}/assignee     -- assign / unassign
  POST   /tickets/{ticket_id}/notes        -- add a comment or internal note
  GET    /tickets/{ticket_id}/notes        -- list notes
  GET    /tickets/{ticket_id}/activity     -- audit trail
  DELETE /tickets/{ticket_id}              -- delete ticket and notes

SLA view: every ticket response carries sla_state / time_remaining / sla_text
computed against one clock reading per request, with the configured warning
window.
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.dependencies import get_helpdesk, not_found, request_now, warning_window
from api.limiter import READ_LIMIT, WRITE_LIMIT, limiter
from api.models import (
    ActivityResponse,
    NoteCreate,
    NoteResponse,
    PriorityEnum,
    TicketAssigneeUpdate,
    TicketCategoryEnum,
    TicketCreate,
    TicketPriorityUpdate,
    TicketResponse,
    TicketSortEnum,
    TicketStatusEnum,
    TicketStatusUpdate,
)
from core.formatter import tickets_to_csv
from helpdesk.models import Ticket
from helpdesk.store import HelpdeskStore

router = APIRouter()


def _ticket_filters(
    organization_id: Optional[int] = None,
    status: Optional[TicketStatusEnum] = None,
    priority: Optional[PriorityEnum] = None,
    category: Optional[TicketCategoryEnum] = None,
    submitter_email: Optional[str] = None,
    assigned_to_email: Optional[str] = None,
    sort: TicketSortEnum = TicketSortEnum.created,
    descending: bool = True,
) -> dict:
    """Query parameters shared by the list and export routes."""
    return {
        "organization_id": organization_id,
        "status": status.value if status else None,
        "priority": priority.value if priority else None,
        "category": category.value if category else None,
        "submitter_email": submitter_email,
        "assigned_to_email": assigned_to_email,
        "sort": sort.value,
        "descending": descending,
    }


# ---------------------------------------------------------------------------
# POST /tickets
# ---------------------------------------------------------------------------


@limiter.limit(WRITE_LIMIT)
@router.post("/tickets", response_model=TicketResponse, status_code=201)
def create_ticket(
    request: Request,
    body: TicketCreate,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> TicketResponse:
    """Open a ticket. The SLA deadline is computed from the tenant policy at this instant."""
    if body.organization_id is not None and helpdesk.get_organization(body.organization_id) is None:
        raise not_found("organization_not_found", f"Organization {body.organization_id} not found.")
    ticket = helpdesk.create_ticket(
        Ticket(
            title=body.title,
            description=body.description,
            category=body.category.value,
            priority=body.priority.value,
            submitter_email=body.submitter_email,
            organization_id=body.organization_id,
            department=body.department,
            assigned_to_email=body.assigned_to_email,
        ),
        now,
    )
    return TicketResponse.from_domain(ticket, now, window)


# ---------------------------------------------------------------------------
# GET /tickets and /tickets/export.csv
# ---------------------------------------------------------------------------


@limiter.limit(READ_LIMIT)
@router.get("/tickets", response_model=list[TicketResponse])
def list_tickets(
    request: Request,
    filters: dict = Depends(_ticket_filters),
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> list[TicketResponse]:
    """List tickets. sort=priority orders critical first; sort=sla orders by deadline."""
    return [TicketResponse.from_domain(t, now, window) for t in helpdesk.list_tickets(**filters)]


@limiter.limit(READ_LIMIT)
@router.get("/tickets/export.csv")
def export_tickets_csv(
    request: Request,
    filters: dict = Depends(_ticket_filters),
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> Response:
    """Download the filtered ticket list as CSV with formula-safe cells."""
    content = tickets_to_csv(helpdesk.list_tickets(**filters), now, window)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="tickets-{now:%Y%m%d}.csv"'},
    )


# ---------------------------------------------------------------------------
# Single ticket
# ---------------------------------------------------------------------------


@limiter.limit(READ_LIMIT)
@router.get("/tickets/{ticket_id}", response_model=TicketResponse)
def get_ticket(
    request: Request,
    ticket_id: int,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> TicketResponse:
    ticket = helpdesk.get_ticket(ticket_id)
    if ticket is None:
        raise not_found("ticket_not_found", f"Ticket {ticket_id} not found.")
    return TicketResponse.from_domain(ticket, now, window)


@limiter.limit(WRITE_LIMIT)
@router.patch("/tickets/{ticket_id}/status", response_model=TicketResponse)
def update_ticket_status(
    request: Request,
    ticket_id: int,
    body: TicketStatusUpdate,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> TicketResponse:
    """Move a ticket through its workflow. resolved/closed stamp resolved_at."""
    ticket = helpdesk.update_status(ticket_id, body.status.value, now, actor_email=body.actor_email)
    if ticket is None:
        raise not_found("ticket_not_found", f"Ticket {ticket_id} not found.")
    return TicketResponse.from_domain(ticket, now, window)


@limiter.limit(WRITE_LIMIT)
@router.patch("/tickets/{ticket_id}/priority", response_model=TicketResponse)
def update_ticket_priority(
    request: Request,
    ticket_id: int,
    body: TicketPriorityUpdate,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> TicketResponse:
    """Change priority. The new deadline is now + the new priority's budget."""
    ticket = helpdesk.update_priority(ticket_id, body.priority.value, now, actor_email=body.actor_email)
    if ticket is None:
        raise not_found("ticket_not_found", f"Ticket {ticket_id} not found.")
    return TicketResponse.from_domain(ticket, now, window)


@limiter.limit(WRITE_LIMIT)
@router.patch("/tickets/{ticket_id}/assignee", response_model=TicketResponse)
def update_ticket_assignee(
    request: Request,
    ticket_id: int,
    body: TicketAssigneeUpdate,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> TicketResponse:
    ticket = helpdesk.assign_ticket(ticket_id, body.assigned_to_email, now, actor_email=body.actor_email)
    if ticket is None:
        raise not_found("ticket_not_found", f"Ticket {ticket_id} not found.")
    return TicketResponse.from_domain(ticket, now, window)


@limiter.limit(WRITE_LIMIT)
@router.delete("/tickets/{ticket_id}", status_code=204)
def delete_ticket(
    request: Request,
    ticket_id: int,
    actor_email: Optional[str] = None,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
) -> Response:
    if not helpdesk.delete_ticket(ticket_id, now, actor_email=actor_email):
        raise not_found("ticket_not_found", f"Ticket {ticket_id} not found.")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Notes and activity
# ---------------------------------------------------------------------------


@limiter.limit(WRITE_LIMIT)
@router.post("/tickets/{ticket_id}/notes", response_model=NoteResponse, status_code=201)
def add_ticket_note(
    request: Request,
    ticket_id: int,
    body: NoteCreate,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
) -> NoteResponse:
    note = helpdesk.add_note(ticket_id, body.content, body.author_email, now, is_internal=body.is_internal)
    if note is None:
        raise not_found("ticket_not_found", f"Ticket {ticket_id} not found.")
    return NoteResponse.from_domain(note)


@limiter.limit(READ_LIMIT)
@router.get("/tickets/{ticket_id}/notes", response_model=list[NoteResponse])
def list_ticket_notes(
    request: Request,
    ticket_id: int,
    include_internal: bool = True,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
) -> list[NoteResponse]:
    if helpdesk.get_ticket(ticket_id) is None:
        raise not_found("ticket_not_found", f"Ticket {ticket_id} not found.")
    return [NoteResponse.from_domain(n) for n in helpdesk.list_notes(ticket_id, include_internal=include_internal)]


@limiter.limit(READ_LIMIT)
@router.get("/tickets/{ticket_id}/activity", response_model=list[ActivityResponse])
def list_ticket_activity(
    request: Request,
    ticket_id: int,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
) -> list[ActivityResponse]:
    """Audit trail for a ticket, oldest first. Survives ticket deletion."""
    records = helpdesk.list_activity(entity_type="ticket", entity_id=ticket_id)
    if not records:
        raise not_found("ticket_not_found", f"No activity recorded for ticket {ticket_id}.")
    return [ActivityResponse.from_domain(r) for r in records]
