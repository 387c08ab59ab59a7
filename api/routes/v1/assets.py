"""
api/routes/v1/assets.py -- Asset inventory routes for the SecDesk REST API.

Routes:
  POST   /assets              -- register an asset
  GET    /assets              -- list, filterable by organization/status/category
  GET    /assets/{asset_id}   -- asset detail
  PATCH  /assets/{asset_id}   -- edit an asset
  DELETE /assets/{asset_id}   -- remove an asset

asset_tag is unique; a second asset with the same tag is refused with 409.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from api.dependencies import changed_fields, get_cmdb, not_found
from api.limiter import READ_LIMIT, WRITE_LIMIT, limiter
from api.models import (
    AssetCategoryEnum,
    AssetCreate,
    AssetResponse,
    AssetStatusEnum,
    AssetUpdate,
    ErrorDetail,
)
from cmdb.models import Asset
from cmdb.store import CMDBStore

router = APIRouter()

_ASSET_NULLABLE = frozenset({"assigned_to", "assigned_to_email", "warranty_expiry"})


@limiter.limit(WRITE_LIMIT)
@router.post("/assets", response_model=AssetResponse, status_code=201)
def create_asset(
    request: Request,
    body: AssetCreate,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> AssetResponse:
    """Register a new asset in the inventory."""
    fields = body.model_dump()
    for key in ("category", "status", "condition"):
        fields[key] = fields[key].value
    try:
        asset_id = cmdb.create_asset(Asset(**fields))
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(
                code="asset_tag_exists",
                message=f"Asset tag '{body.asset_tag}' is already in use.",
                detail="asset_tag",
            ).model_dump(),
        )
    return AssetResponse.from_domain(cmdb.get_asset(asset_id))


@limiter.limit(READ_LIMIT)
@router.get("/assets", response_model=list[AssetResponse])
def list_assets(
    request: Request,
    organization_id: Optional[int] = None,
    status: Optional[AssetStatusEnum] = None,
    category: Optional[AssetCategoryEnum] = None,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> list[AssetResponse]:
    """Return assets, newest first."""
    assets = cmdb.list_assets(
        organization_id=organization_id,
        status=status.value if status else None,
        category=category.value if category else None,
    )
    return [AssetResponse.from_domain(a) for a in assets]


@limiter.limit(READ_LIMIT)
@router.get("/assets/{asset_id}", response_model=AssetResponse)
def get_asset(
    request: Request,
    asset_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> AssetResponse:
    asset = cmdb.get_asset(asset_id)
    if asset is None:
        raise not_found("asset_not_found", f"Asset {asset_id} not found.")
    return AssetResponse.from_domain(asset)


@limiter.limit(WRITE_LIMIT)
@router.patch("/assets/{asset_id}", response_model=AssetResponse)
def update_asset(
    request: Request,
    asset_id: int,
    body: AssetUpdate,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> AssetResponse:
    if not cmdb.update_asset(asset_id, **changed_fields(body, nullable=_ASSET_NULLABLE)):
        raise not_found("asset_not_found", f"Asset {asset_id} not found.")
    return AssetResponse.from_domain(cmdb.get_asset(asset_id))


@limiter.limit(WRITE_LIMIT)
@router.delete("/assets/{asset_id}", status_code=204)
def delete_asset(
    request: Request,
    asset_id: int,
    cmdb: CMDBStore = Depends(get_cmdb),
) -> Response:
    if not cmdb.delete_asset(asset_id):
        raise not_found("asset_not_found", f"Asset {asset_id} not found.")
    return Response(status_code=204)
