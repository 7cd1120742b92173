"""Stock arithmetic and the movement/restock journal shared by the asset services."""

from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from rail_assets.models import Asset, AssetMovement, BulkStatus, MovementType, RestockLog


def lock_asset(session: Session, asset_id: int) -> Optional[Asset]:
    """Load an asset row FOR UPDATE so stock and custody checks hold until commit."""
    return session.exec(select(Asset).where(Asset.asset_id == asset_id).with_for_update()).first()


def bulk_status_for(quantity: int, current: Optional[BulkStatus] = None) -> BulkStatus:
    # discontinued is set by hand and survives stock changes
    if current == BulkStatus.discontinued:
        return current
    return BulkStatus.active if quantity > 0 else BulkStatus.out_of_stock


def is_low_stock(level: Optional[int], threshold: Optional[int]) -> bool:
    return (level or 0) <= (threshold or 0)


def stock_percentage(level: Optional[int], threshold: Optional[int]) -> Optional[int]:
    if not threshold:
        return None
    return round((level or 0) / threshold * 100)


def build_note(kind: str, quantity: int, old_qty: int, new_qty: int, note: Optional[str]) -> str:
    note_clean = (note or "").strip()
    if kind == "initial":
        base = f"Initial stock: {quantity} units."
    elif kind == "restock":
        base = f"Restocked: +{quantity} units ({old_qty}->{new_qty})."
    elif kind == "consume":
        base = f"Consumed: -{quantity} units ({old_qty}->{new_qty})."
    elif kind == "assign":
        base = f"Issued {quantity} units ({old_qty}->{new_qty})."
    elif kind == "return":
        base = f"Returned {quantity} units ({old_qty}->{new_qty})."
    else:
        base = ""
    return f"{base} {note_clean}".strip()


def record_movement(
    session: Session,
    *,
    asset_id: int,
    moved_by: str,
    movement_type: MovementType,
    quantity: int = 1,
    from_location_id: Optional[int] = None,
    to_location_id: Optional[int] = None,
    notes: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> AssetMovement:
    mv = AssetMovement(
        asset_id=asset_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        moved_by=moved_by,
        movement_type=movement_type,
        quantity=quantity,
        notes=notes,
    )
    if timestamp is not None:
        mv.timestamp = timestamp
    session.add(mv)
    return mv


def record_restock(
    session: Session,
    *,
    asset_id: int,
    quantity: int,
    restocked_by: str,
    notes: Optional[str] = None,
) -> RestockLog:
    log = RestockLog(
        asset_id=asset_id,
        quantity_restocked=quantity,
        restocked_by=restocked_by,
        notes=notes,
    )
    session.add(log)
    return log
