"""
api/routes/v1/ipam.py -- Subnet and IP address allocation routes.

Routes:
  POST   /subnets                                -- define a subnet
  GET    /subnets                                -- list subnets (with stats)
  GET    /subnets/{subnet_id}                    -- subnet detail + capacity stats
  PATCH  /subnets/{subnet_id}                    -- edit descriptive fields
  DELETE /subnets/{subnet_id}                    -- delete (409 while addresses remain)
  GET    /subnets/{subnet_id}/next-available     -- lowest free usable address
  POST   /subnets/{subnet_id}/addresses          -- allocate an address
  GET    /subnets/{subnet_id}/addresses          -- list allocations
  POST   /subnets/{subnet_id}/conflicts/scan     -- flag duplicate holders as conflict
  PATCH  /addresses/{allocation_id}              -- edit an allocation (re-validated)
  DELETE /addresses/{allocation_id}              -- release an allocation
  GET    /ipam/overview                          -- aggregate capacity dashboard

Validation failures surface as the core error codes (malformed_address,
address_out_of_range, reserved_address, duplicate_allocation, ...) through
the DeskError handler in api/main.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.dependencies import changed_fields, get_cmdb, get_helpdesk, not_found
from api.limiter import READ_LIMIT, WRITE_LIMIT, limiter
from api.models import (
    AllocationCreate,
    AllocationResponse,
    AllocationUpdate,
    ConflictScanResponse,
    IPAMOverviewResponse,
    NextAvailableResponse,
    SubnetCreate,
    SubnetResponse,
    SubnetUpdate,
)
from cmdb.store import CMDBStore
from core.models import AddressAllocation, Subnet
from helpdesk.store import HelpdeskStore

router = APIRouter()

_ALLOCATION_NULLABLE = frozenset({"mac_address", "assigned_to_email", "hostname", "department"})


def _subnet_missing(subnet_id: int):
    return not_found("subnet_not_found", f"Subnet {subnet_id} not found.")


# ---------------------------------------------------------------------------
# Subnets
# ---------------------------------------------------------------------------


@limiter.limit(WRITE_LIMIT)
@router.post("/subnets", response_model=SubnetResponse, status_code=201)
def create_subnet(
    request: Request,
    body: SubnetCreate,
    cmdb: CMDBStore = Depends(get_cmdb),
    helpdesk: HelpdeskStore = Depends(get_helpdesk),
) -> SubnetResponse:
    """Define a subnet. Overlap is checked against the same organization's subnets."""
    if body.organization_id is not None and helpdesk.get_organization(body.organization_id) is None:
        raise not_found("organization_not_found", f"Organization {body.organization_id} not found.")
    subnet = cmdb.create_subnet(
        Subnet(
            network=body.network,
            prefix_length=body.prefix_length,
            gateway=body.gateway,
            name=body.name,
            description=body.description,
            organization_id=body.organization_id,
            vlan_id=body.vlan_id,
            location=body.location,
            status=body.status.value,
            tags=body.tags,
        )
    )
    return SubnetResponse.from_domain(subnet, cmdb.subnet_stats(subnet.id))


@limiter.limit(READ_LIMIT)
@router.get("/subnets", response_model=list[SubnetResponse])
def list_subnets(
    request: Request,
    organization_id: Optional[int] = None,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> list[SubnetResponse]:
    return [SubnetResponse.from_domain(s, cmdb.subnet_stats(s.id)) for s in cmdb.list_subnets(organization_id)]


@limiter.limit(READ_LIMIT)
@router.get("/subnets/{subnet_id}", response_model=SubnetResponse)
def get_subnet(
    request: Request,
    subnet_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> SubnetResponse:
    subnet = cmdb.get_subnet(subnet_id)
    if subnet is None:
        raise _subnet_missing(subnet_id)
    return SubnetResponse.from_domain(subnet, cmdb.subnet_stats(subnet_id))


@limiter.limit(WRITE_LIMIT)
@router.patch("/subnets/{subnet_id}", response_model=SubnetResponse)
def update_subnet(
    request: Request,
    subnet_id: int,
    body: SubnetUpdate,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> SubnetResponse:
    """Edit name, description, location, status, VLAN or tags. Addressing is fixed."""
    subnet = cmdb.update_subnet(subnet_id, **changed_fields(body, nullable=frozenset({"vlan_id"})))
    if subnet is None:
        raise _subnet_missing(subnet_id)
    return SubnetResponse.from_domain(subnet, cmdb.subnet_stats(subnet_id))


@limiter.limit(WRITE_LIMIT)
@router.delete("/subnets/{subnet_id}", status_code=204)
def delete_subnet(
    request: Request,
    subnet_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> Response:
    """Delete a subnet. Refused with subnet_in_use (409) while it still has allocations."""
    if not cmdb.delete_subnet(subnet_id):
        raise _subnet_missing(subnet_id)
    return Response(status_code=204)


@limiter.limit(READ_LIMIT)
@router.get("/subnets/{subnet_id}/next-available", response_model=NextAvailableResponse)
def next_available(
    request: Request,
    subnet_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> NextAvailableResponse:
    try:
        address = cmdb.next_available_address(subnet_id)
    except LookupError:
        raise _subnet_missing(subnet_id)
    return NextAvailableResponse(subnet_id=subnet_id, address=address)


# ---------------------------------------------------------------------------
# Allocations
# ---------------------------------------------------------------------------


@limiter.limit(WRITE_LIMIT)
@router.post("/subnets/{subnet_id}/addresses", response_model=AllocationResponse, status_code=201)
def allocate_address(
    request: Request,
    subnet_id: int,
    body: AllocationCreate,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> AllocationResponse:
    """Allocate an address inside the subnet.

    The duplicate check and the insert run in one locked transaction, so two
    concurrent requests for the same address yield one 201 and one 409.
    """
    alloc = cmdb.allocate_address(
        AddressAllocation(
            address=body.address,
            subnet_id=subnet_id,
            status=body.status.value,
            mac_address=body.mac_address,
            assigned_to_email=body.assigned_to_email,
            hostname=body.hostname,
            device_type=body.device_type.value,
            department=body.department,
            description=body.description,
            tags=body.tags,
        )
    )
    if alloc is None:
        raise _subnet_missing(subnet_id)
    return AllocationResponse.from_domain(alloc)


@limiter.limit(READ_LIMIT)
@router.get("/subnets/{subnet_id}/addresses", response_model=list[AllocationResponse])
def list_addresses(
    request: Request,
    subnet_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> list[AllocationResponse]:
    if cmdb.get_subnet(subnet_id) is None:
        raise _subnet_missing(subnet_id)
    return [AllocationResponse.from_domain(a) for a in cmdb.list_allocations(subnet_id)]


@limiter.limit(WRITE_LIMIT)
@router.post("/subnets/{subnet_id}/conflicts/scan", response_model=ConflictScanResponse)
def scan_conflicts(
    request: Request,
    subnet_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> ConflictScanResponse:
    """Mark allocations that share an address as conflict. Returns the rows changed."""
    if cmdb.get_subnet(subnet_id) is None:
        raise _subnet_missing(subnet_id)
    marked = cmdb.mark_conflicts(subnet_id)
    return ConflictScanResponse(subnet_id=subnet_id, marked=[AllocationResponse.from_domain(a) for a in marked])


@limiter.limit(WRITE_LIMIT)
@router.patch("/addresses/{allocation_id}", response_model=AllocationResponse)
def update_address(
    request: Request,
    allocation_id: int,
    body: AllocationUpdate,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> AllocationResponse:
    """Edit an allocation. The whole record is re-validated, excluding its own stored row."""
    alloc = cmdb.update_allocation(allocation_id, **changed_fields(body, nullable=_ALLOCATION_NULLABLE))
    if alloc is None:
        raise not_found("allocation_not_found", f"Address allocation {allocation_id} not found.")
    return AllocationResponse.from_domain(alloc)


@limiter.limit(WRITE_LIMIT)
@router.delete("/addresses/{allocation_id}", status_code=204)
def release_address(
    request: Request,
    allocation_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> Response:
    if not cmdb.release_allocation(allocation_id):
        raise not_found("allocation_not_found", f"Address allocation {allocation_id} not found.")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


@limiter.limit(READ_LIMIT)
@router.get("/ipam/overview", response_model=IPAMOverviewResponse)
def ipam_overview(
    request: Request,
    organization_id: Optional[int] = None,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> IPAMOverviewResponse:
    return IPAMOverviewResponse.from_domain(cmdb.ipam_overview(organization_id))
