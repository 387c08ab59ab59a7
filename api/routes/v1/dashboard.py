"""
api/routes/v1/dashboard.py -- Aggregated metrics endpoint for SecDesk.

Returns a single payload suitable for driving dashboard widgets:
  - Ticket counts, SLA breaches and the five most recent tickets
  - IPAM capacity overview with the most utilized subnets
  - Asset inventory totals and warranties expiring within 30 days

This is a read-only aggregate route -- no mutations here.
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_cmdb, get_helpdesk, request_now, warning_window
from api.limiter import READ_LIMIT, limiter
from api.models import AssetStatsResponse, DashboardResponse, IPAMOverviewResponse, TicketStatsResponse
from cmdb.store import CMDBStore
from helpdesk.store import HelpdeskStore

router = APIRouter()


@limiter.limit(READ_LIMIT)
@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    request: Request,
    organization_id: Optional[int] = None,
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
    cmdb: CMDBStore = Depends(get_cmdb),
    now: datetime = Depends(request_now),
    window: timedelta = Depends(warning_window),
) -> DashboardResponse:
    """Return helpdesk, IPAM and inventory metrics, optionally for one organization.

    sla_breaches counts open work only; resolved and closed tickets are never
    breached regardless of when they were resolved.
    """
    return DashboardResponse(
        generated_at=now,
        tickets=TicketStatsResponse.from_domain(
            helpdesk.ticket_stats(now, organization_id=organization_id, warning_window=window), now, window
        ),
        ipam=IPAMOverviewResponse.from_domain(cmdb.ipam_overview(organization_id)),
        assets=AssetStatsResponse.from_domain(cmdb.asset_stats(now.date(), organization_id=organization_id)),
    )
