from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_user
from rail_assets.error import abort
from rail_assets.export import build_register, norm_dt, norm_str, xlsx_response
from rail_assets.models import BulkStatus, IndividualStatus, User
from rail_assets.schemas import (
    BulkAssetDetails,
    LowStockAsset,
    OverdueAssignment,
    Page,
    RestockRead,
    TrackedBulkAssetPage,
    TrackedUniqueAsset,
    TrackingSummary,
    UniqueAssetHistory,
)
from rail_assets.services.tracking import TrackingService

unique_router = APIRouter(prefix="/unique-asset-tracking", tags=["tracking"])
bulk_router = APIRouter(prefix="/bulk-asset-tracking", tags=["tracking"])

BULK_EXPORT_COLUMNS = [
    ("ID", 8),
    ("Name", 24),
    ("Model", 16),
    ("Status", 14),
    ("Stock", 10),
    ("Threshold", 10),
    ("Low stock", 10),
    ("Location", 26),
    ("Keeper", 22),
    ("Last restocked", 20),
]


@unique_router.get("", response_model=Page[TrackedUniqueAsset])
def tracked_unique_assets(
    search: Optional[str] = Query(None, max_length=100),
    status: Optional[IndividualStatus] = None,
    location_id: Optional[int] = Query(None, ge=1),
    keeper_payroll_number: Optional[str] = None,
    assigned_to: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return TrackingService.get_tracked_unique_assets(
        session,
        search=search,
        status=status,
        location_id=location_id,
        keeper_payroll_number=keeper_payroll_number,
        assigned_to=assigned_to,
        page=page,
        limit=limit,
    )


@unique_router.get("/summary", response_model=TrackingSummary)
def unique_tracking_summary(
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return TrackingService.get_tracking_summary(session)


@unique_router.get("/attention", response_model=list[OverdueAssignment])
def unique_assets_needing_attention(
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return TrackingService.get_assets_needing_attention(session)


@unique_router.get("/{asset_id}", response_model=TrackedUniqueAsset)
def tracked_unique_asset(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    details = TrackingService.get_unique_asset_details(session, asset_id)
    if details is None:
        abort(404, "NOT_FOUND", "Unique asset not found")
    return details


@unique_router.get("/{asset_id}/history", response_model=UniqueAssetHistory)
def unique_asset_history(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    history = TrackingService.get_unique_asset_history(session, asset_id)
    if history is None:
        abort(404, "NOT_FOUND", "Unique asset not found")
    return history


@bulk_router.get("", response_model=TrackedBulkAssetPage)
def tracked_bulk_assets(
    search: Optional[str] = Query(None, max_length=100),
    status: Optional[BulkStatus] = None,
    location_id: Optional[int] = Query(None, ge=1),
    keeper_payroll_number: Optional[str] = None,
    low_stock_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return TrackingService.get_tracked_bulk_assets(
        session,
        search=search,
        status=status,
        location_id=location_id,
        keeper_payroll_number=keeper_payroll_number,
        low_stock_only=low_stock_only,
        page=page,
        limit=limit,
    )


@bulk_router.get("/low-stock", response_model=list[LowStockAsset])
def low_stock_assets(
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return TrackingService.get_low_stock_assets(session)


@bulk_router.get("/export.xlsx")
def export_bulk_assets_xlsx(
    search: Optional[str] = None,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    tracked = TrackingService.get_all_tracked_bulk_assets(session, search)
    rows = (
        [
            t["asset_id"],
            norm_str(t["name"], "Unnamed"),
            norm_str(t["model_number"]),
            norm_str(t["bulk_status"]),
            t["current_stock_level"],
            t["minimum_threshold"],
            "yes" if t["stock_metrics"]["is_low_stock"] else "no",
            f"{t['location']['region_name']} - {t['location']['department_name']}" if t["location"] else "",
            t["keeper"]["full_name"] if t["keeper"] else "",
            norm_dt(t["last_restocked"]),
        ]
        for t in tracked
    )
    content = build_register(
        "Bulk assets",
        BULK_EXPORT_COLUMNS,
        rows,
        {5: "0", 6: "0", 10: "yyyy-mm-dd hh:mm:ss"},
    )
    return xlsx_response(content, "bulk-assets.xlsx")


@bulk_router.get("/{asset_id}", response_model=BulkAssetDetails)
def tracked_bulk_asset(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    details = TrackingService.get_bulk_asset_details(session, asset_id)
    if details is None:
        abort(404, "NOT_FOUND", "Bulk asset not found")
    return details


@bulk_router.get("/{asset_id}/history", response_model=list[RestockRead])
def bulk_restock_history(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    history = TrackingService.get_bulk_restock_history(session, asset_id)
    if history is None:
        abort(404, "NOT_FOUND", "Bulk asset not found")
    return history
