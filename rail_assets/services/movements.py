from typing import Optional

from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from rail_assets.models import Asset, AssetMovement, Location, User

FromLocation = aliased(Location, name="from_location")
ToLocation = aliased(Location, name="to_location")
Mover = aliased(User, name="mover")


def movement_details(session: Session, *conds, limit: Optional[int] = None) -> list[dict]:
    """Movements with asset, location and mover names, newest first."""
    stmt = (
        select(AssetMovement, Asset.name, FromLocation, ToLocation, Mover)
        .outerjoin(Asset, AssetMovement.asset_id == Asset.asset_id)
        .outerjoin(FromLocation, AssetMovement.from_location_id == FromLocation.location_id)
        .outerjoin(ToLocation, AssetMovement.to_location_id == ToLocation.location_id)
        .outerjoin(Mover, AssetMovement.moved_by == Mover.payroll_number)
    )
    if conds:
        stmt = stmt.where(*conds)
    stmt = stmt.order_by(AssetMovement.timestamp.desc(), AssetMovement.movement_id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)

    items = []
    for mv, asset_name, src, dst, mover in session.exec(stmt).all():
        d = mv.model_dump()
        d.update(
            asset_name=asset_name,
            from_location_name=src.display_name if src else None,
            to_location_name=dst.display_name if dst else None,
            moved_by_name=mover.full_name if mover else None,
        )
        items.append(d)
    return items
