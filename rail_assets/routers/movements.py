from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlmodel import Session, select

from rail_assets.dates import get_zone, parse_dt_or_date
from rail_assets.db import get_session
from rail_assets.deps import require_user
from rail_assets.error import abort
from rail_assets.models import Asset, AssetMovement, MovementType, User
from rail_assets.schemas import MovementDetail, MovementListResponse, MovementSort
from rail_assets.services.movements import movement_details


router = APIRouter(prefix="/movements", tags=["movements"])


@router.get("", response_model=MovementListResponse)
def list_movements(
    asset_id: Optional[int] = Query(None, ge=1, description="Only movements of this asset"),
    movement_type: Optional[MovementType] = Query(None),
    moved_by: Optional[str] = Query(None, min_length=1, max_length=50, description="Payroll number of the mover"),
    tz: Optional[str] = Query(None, description="Time zone for naive start/end, e.g. Africa/Nairobi"),
    start: Optional[str] = Query(None, description="Start date/datetime, e.g. 2026-01-12 or 2026-01-12T08:30:00"),
    end: Optional[str] = Query(None, description="End date/datetime (exclusive)"),
    sort: MovementSort = Query(MovementSort.id_desc),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    stmt = select(AssetMovement)
    count_stmt = select(func.count()).select_from(AssetMovement)

    if asset_id is not None:
        stmt = stmt.where(AssetMovement.asset_id == asset_id)
        count_stmt = count_stmt.where(AssetMovement.asset_id == asset_id)

    if movement_type is not None:
        stmt = stmt.where(AssetMovement.movement_type == movement_type)
        count_stmt = count_stmt.where(AssetMovement.movement_type == movement_type)

    if moved_by is not None:
        mover = moved_by.strip()
        if mover:
            stmt = stmt.where(AssetMovement.moved_by == mover)
            count_stmt = count_stmt.where(AssetMovement.moved_by == mover)

    zone = get_zone(tz)

    start_dt = None
    end_dt = None

    if start:
        start_dt = parse_dt_or_date(start, is_end=False, assume_tz=zone)
        stmt = stmt.where(AssetMovement.timestamp >= start_dt)
        count_stmt = count_stmt.where(AssetMovement.timestamp >= start_dt)

    if end:
        end_dt = parse_dt_or_date(end, is_end=True, assume_tz=zone)
        stmt = stmt.where(AssetMovement.timestamp < end_dt)
        count_stmt = count_stmt.where(AssetMovement.timestamp < end_dt)

    if start_dt is not None and end_dt is not None and start_dt >= end_dt:
        abort(400, "BAD_REQUEST", "start must be earlier than end")

    if sort == MovementSort.id_desc:
        stmt = stmt.order_by(AssetMovement.movement_id.desc())
    elif sort == MovementSort.id_asc:
        stmt = stmt.order_by(AssetMovement.movement_id.asc())
    elif sort == MovementSort.time_desc:
        stmt = stmt.order_by(AssetMovement.timestamp.desc(), AssetMovement.movement_id.desc())
    elif sort == MovementSort.time_asc:
        stmt = stmt.order_by(AssetMovement.timestamp.asc(), AssetMovement.movement_id.asc())

    total = session.exec(count_stmt).one()
    items = session.exec(stmt.offset(offset).limit(limit)).all()

    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/assets/{asset_id}", response_model=list[MovementDetail])
def asset_movement_history(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    if not session.get(Asset, asset_id):
        abort(404, "NOT_FOUND", "Asset not found")
    return movement_details(session, AssetMovement.asset_id == asset_id)
