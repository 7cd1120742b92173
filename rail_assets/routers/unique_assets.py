from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_keeper, require_user
from rail_assets.error import abort, raise_for_result
from rail_assets.export import build_register, norm_dt, norm_str, xlsx_response
from rail_assets.models import IndividualStatus, User
from rail_assets.schemas import (
    Page,
    TransferRequest,
    UniqueAssetCreate,
    UniqueAssetRead,
    UniqueAssetUpdate,
    asset_read,
)
from rail_assets.services.unique_assets import UniqueAssetService

router = APIRouter(prefix="/unique-assets", tags=["unique-assets"])

EXPORT_COLUMNS = [
    ("ID", 8),
    ("Name", 24),
    ("Serial number", 20),
    ("Model", 16),
    ("Status", 14),
    ("Location ID", 12),
    ("Keeper", 14),
    ("Notes", 28),
    ("Updated", 20),
]


@router.get("", response_model=Page[UniqueAssetRead])
def list_unique_assets(
    status: Optional[IndividualStatus] = None,
    location_id: Optional[int] = Query(None, ge=1),
    keeper_payroll_number: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    payload = UniqueAssetService.list_unique_assets(
        session, page, limit, status, location_id, keeper_payroll_number
    )
    payload["items"] = [asset_read(a) for a in payload["items"]]
    return payload


@router.post("", response_model=UniqueAssetRead, status_code=201)
def create_unique_asset(
    data: UniqueAssetCreate,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = UniqueAssetService.create_unique_asset(session, data, user.payroll_number)
    raise_for_result(result)
    return asset_read(result.data)


@router.get("/export.xlsx")
def export_unique_assets_xlsx(
    status: Optional[IndividualStatus] = None,
    location_id: Optional[int] = Query(None, ge=1),
    keeper_payroll_number: Optional[str] = None,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    assets = UniqueAssetService.all_unique_assets(session, status, location_id, keeper_payroll_number)
    rows = (
        [
            a.asset_id,
            norm_str(a.name, "Unnamed"),
            norm_str(a.serial_number),
            norm_str(a.model_number),
            norm_str(a.individual_status),
            a.location_id,
            norm_str(a.keeper_payroll_number),
            norm_str(a.notes),
            norm_dt(a.updated_at),
        ]
        for a in assets
    )
    content = build_register("Unique assets", EXPORT_COLUMNS, rows, {9: "yyyy-mm-dd hh:mm:ss"})
    return xlsx_response(content, "unique-assets.xlsx")


@router.get("/{asset_id}", response_model=UniqueAssetRead)
def get_unique_asset(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    asset = UniqueAssetService.get_unique_asset(session, asset_id)
    if not asset:
        abort(404, "NOT_FOUND", "Unique asset not found")
    return asset_read(asset)


@router.patch("/{asset_id}", response_model=UniqueAssetRead)
def update_unique_asset(
    asset_id: int,
    data: UniqueAssetUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = UniqueAssetService.update_unique_asset(session, asset_id, data, user.payroll_number)
    raise_for_result(result)
    return asset_read(result.data)


@router.post("/{asset_id}/transfer", response_model=UniqueAssetRead)
def transfer_unique_asset(
    asset_id: int,
    body: TransferRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = UniqueAssetService.transfer_asset(
        session, asset_id, body.to_location_id, user.payroll_number, body.notes
    )
    raise_for_result(result)
    return asset_read(result.data)


@router.delete("/{asset_id}")
def delete_unique_asset(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_keeper),
):
    result = UniqueAssetService.delete_unique_asset(session, asset_id)
    raise_for_result(result)
    return {"ok": True, "message": result.message}
