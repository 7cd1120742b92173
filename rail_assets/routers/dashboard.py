from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_user
from rail_assets.models import User
from rail_assets.schemas import ActivityDashboard, BulkDashboard, UniqueDashboard
from rail_assets.services.dashboard import DashboardService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/unique", response_model=UniqueDashboard)
def unique_stats(
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return DashboardService.get_unique_asset_stats(session)


@router.get("/bulk", response_model=BulkDashboard)
def bulk_stats(
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return DashboardService.get_bulk_asset_stats(session)


@router.get("/activity", response_model=ActivityDashboard)
def activity(
    keepers: int = Query(3, ge=1, le=20),
    movements: int = Query(5, ge=1, le=50),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return {
        "top_keepers": DashboardService.get_top_keepers(session, keepers),
        "recent_movements": DashboardService.get_recent_movements(session, movements),
    }
