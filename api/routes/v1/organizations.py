"""
api/routes/v1/organizations.py -- Tenant and SLA policy routes.

Routes:
  POST   /organizations                       -- create a tenant
  GET    /organizations                       -- list tenants
  GET    /organizations/{org_id}              -- tenant detail
  GET    /organizations/{org_id}/sla-policy   -- policy in force (override or default)
  PUT    /organizations/{org_id}/sla-policy   -- set or clear the override

Changing a policy never moves existing ticket deadlines. It applies to tickets
created or re-prioritized afterwards.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.dependencies import get_helpdesk, not_found, request_now
from api.limiter import READ_LIMIT, WRITE_LIMIT, limiter
from api.models import (
    ErrorDetail,
    OrganizationCreate,
    OrganizationResponse,
    SlaPolicyResponse,
    SlaPolicyUpdate,
)
from helpdesk.models import Organization
from helpdesk.store import HelpdeskStore

router = APIRouter()


@limiter.limit(WRITE_LIMIT)
@router.post("/organizations", response_model=OrganizationResponse, status_code=201)
def create_organization(
    request: Request,
    body: OrganizationCreate,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
) -> OrganizationResponse:
    """Create a tenant. sla_hours, when given, must cover every priority."""
    org = Organization(
        name=body.name,
        domain=body.domain,
        sla_hours=body.sla_hours,
        categories=body.categories,
        departments=body.departments,
    )
    try:
        org_id = helpdesk.create_organization(org, now, actor_email=body.actor_email)
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(
                code="organization_exists",
                message=f"An organization named '{body.name}' already exists.",
                detail="name",
            ).model_dump(),
        )
    return OrganizationResponse.from_domain(helpdesk.get_organization(org_id))


@limiter.limit(READ_LIMIT)
@router.get("/organizations", response_model=list[OrganizationResponse])
def list_organizations(
    request: Request,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
) -> list[OrganizationResponse]:
    return [OrganizationResponse.from_domain(o) for o in helpdesk.list_organizations()]


@limiter.limit(READ_LIMIT)
@router.get("/organizations/{org_id}", response_model=OrganizationResponse)
def get_organization(
    request: Request,
    org_id: int,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
) -> OrganizationResponse:
    org = helpdesk.get_organization(org_id)
    if org is None:
        raise not_found("organization_not_found", f"Organization {org_id} not found.")
    return OrganizationResponse.from_domain(org)


@limiter.limit(READ_LIMIT)
@router.get("/organizations/{org_id}/sla-policy", response_model=SlaPolicyResponse)
def get_sla_policy(
    request: Request,
    org_id: int,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
) -> SlaPolicyResponse:
    """Return the hours in force for this tenant and whether they are the default."""
    org = helpdesk.get_organization(org_id)
    if org is None:
        raise not_found("organization_not_found", f"Organization {org_id} not found.")
    return SlaPolicyResponse(
        organization_id=org_id,
        hours=helpdesk.get_sla_policy(org_id),
        is_default=org.sla_hours is None,
    )


@limiter.limit(WRITE_LIMIT)
@router.put("/organizations/{org_id}/sla-policy", response_model=SlaPolicyResponse)
def update_sla_policy(
    request: Request,
    org_id: int,
    body: SlaPolicyUpdate,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    now: datetime = Depends(request_now),
) -> SlaPolicyResponse:
    """Replace the tenant's override. {"hours": null} reverts to the default.

    An override missing a priority, or with a non-positive budget, is refused
    with incomplete_policy.
    """
    if not helpdesk.update_sla_policy(org_id, body.hours, now, actor_email=body.actor_email):
        raise not_found("organization_not_found", f"Organization {org_id} not found.")
    return SlaPolicyResponse(
        organization_id=org_id,
        hours=helpdesk.get_sla_policy(org_id),
        is_default=body.hours is None,
    )
