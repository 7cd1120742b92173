from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_keeper, require_user
from rail_assets.error import abort, raise_for_result
from rail_assets.models import User
from rail_assets.schemas import (
    BulkAssetCreate,
    BulkAssetRead,
    BulkAssetUpdate,
    Page,
    RestockRequest,
    asset_read,
)
from rail_assets.services.bulk_assets import BulkAssetService

router = APIRouter(prefix="/bulk-assets", tags=["bulk-assets"])


@router.get("", response_model=Page[BulkAssetRead])
def list_bulk_assets(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    payload = BulkAssetService.list_bulk_assets(session, page, limit)
    payload["items"] = [asset_read(a) for a in payload["items"]]
    return payload


@router.post("", response_model=BulkAssetRead, status_code=201)
def create_bulk_asset(
    data: BulkAssetCreate,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = BulkAssetService.create_bulk_asset(session, data, created_by=user.payroll_number)
    raise_for_result(result)
    return asset_read(result.data)


@router.get("/{asset_id}", response_model=BulkAssetRead)
def get_bulk_asset(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    asset = BulkAssetService.get_bulk_asset(session, asset_id)
    if not asset:
        abort(404, "NOT_FOUND", "Bulk asset not found")
    return asset_read(asset)


@router.patch("/{asset_id}", response_model=BulkAssetRead)
def update_bulk_asset(
    asset_id: int,
    data: BulkAssetUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = BulkAssetService.update_bulk_asset(session, asset_id, data, user.payroll_number)
    raise_for_result(result)
    return asset_read(result.data)


@router.post("/{asset_id}/restock", response_model=BulkAssetRead)
def restock_bulk_asset(
    asset_id: int,
    body: RestockRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = BulkAssetService.restock(session, asset_id, body.quantity, user.payroll_number, body.notes)
    raise_for_result(result)
    return asset_read(result.data)


@router.delete("/{asset_id}")
def delete_bulk_asset(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_keeper),
):
    result = BulkAssetService.delete_bulk_asset(session, asset_id)
    raise_for_result(result)
    return {"ok": True, "message": result.message}
