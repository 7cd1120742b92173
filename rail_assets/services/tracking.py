"""Read-only views over assets: where they are, who holds them, what happened to them."""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from rail_assets.config import get_settings
from rail_assets.models import (
    Asset,
    AssetAssignment,
    AssetMovement,
    BulkStatus,
    IndividualStatus,
    Location,
    RestockLog,
    User,
    utcnow,
)
from rail_assets.services.assignments import assignment_details
from rail_assets.services.ledger import is_low_stock, stock_percentage
from rail_assets.services.movements import movement_details
from rail_assets.services.paging import page_payload, page_window

Keeper = aliased(User, name="keeper")
Assignee = aliased(User, name="assignee")
Restocker = aliased(User, name="restocker")

LOW_STOCK = func.coalesce(Asset.current_stock_level, 0) <= func.coalesce(Asset.minimum_threshold, 0)


def _location_brief(location: Optional[Location]) -> Optional[dict]:
    if location is None:
        return None
    return {
        "location_id": location.location_id,
        "region_name": location.region_name,
        "department_name": location.department_name,
        "notes": location.notes,
    }


def _person_brief(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "payroll_number": user.payroll_number,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
    }


# ---- unique assets -------------------------------------------------------


def _unique_conds(
    search: Optional[str],
    status: Optional[IndividualStatus],
    location_id: Optional[int],
    keeper_payroll_number: Optional[str],
    assigned_to: Optional[str],
) -> list:
    conds = [Asset.is_bulk == False]  # noqa: E712
    s = (search or "").strip()
    if s:
        pattern = f"%{s}%"
        conds.append(
            or_(
                Asset.name.ilike(pattern),
                Asset.serial_number.ilike(pattern),
                Asset.model_number.ilike(pattern),
            )
        )
    if status is not None:
        conds.append(Asset.individual_status == status)
    if location_id is not None:
        conds.append(Asset.location_id == location_id)
    if keeper_payroll_number:
        conds.append(Asset.keeper_payroll_number == keeper_payroll_number)
    if assigned_to:
        conds.append(
            Asset.asset_id.in_(
                select(AssetAssignment.asset_id).where(
                    AssetAssignment.assigned_to == assigned_to,
                    AssetAssignment.date_returned.is_(None),
                )
            )
        )
    return conds


def _current_assignments(session: Session, asset_ids: list[int]) -> dict[int, dict]:
    if not asset_ids:
        return {}
    rows = session.exec(
        select(AssetAssignment, Assignee)
        .join(Assignee, AssetAssignment.assigned_to == Assignee.payroll_number)
        .where(
            AssetAssignment.asset_id.in_(asset_ids),
            AssetAssignment.date_returned.is_(None),
        )
    ).all()
    return {
        a.asset_id: {
            "assignment_id": a.assignment_id,
            "assigned_to": a.assigned_to,
            "assigned_to_name": user.full_name,
            "date_issued": a.date_issued,
            "condition_issued": a.condition_issued,
            "quantity": a.quantity,
        }
        for a, user in rows
    }


def _latest_movements(session: Session, asset_ids: list[int]) -> dict[int, dict]:
    if not asset_ids:
        return {}
    latest_ids = (
        select(func.max(AssetMovement.movement_id))
        .where(AssetMovement.asset_id.in_(asset_ids))
        .group_by(AssetMovement.asset_id)
    )
    return {
        mv["asset_id"]: {
            "movement_id": mv["movement_id"],
            "from_location": mv["from_location_name"],
            "to_location": mv["to_location_name"],
            "moved_by": mv["moved_by"],
            "moved_by_name": mv["moved_by_name"] or mv["moved_by"],
            "movement_type": mv["movement_type"],
            "timestamp": mv["timestamp"],
        }
        for mv in movement_details(session, AssetMovement.movement_id.in_(latest_ids))
    }


def _tracked_unique(session: Session, rows) -> list[dict]:
    ids = [asset.asset_id for asset, _, _ in rows]
    current = _current_assignments(session, ids)
    latest = _latest_movements(session, ids)
    return [
        {
            "asset_id": asset.asset_id,
            "name": asset.name,
            "serial_number": asset.serial_number,
            "model_number": asset.model_number,
            "individual_status": asset.individual_status,
            "notes": asset.notes,
            "created_at": asset.created_at,
            "updated_at": asset.updated_at,
            "location": _location_brief(location),
            "keeper": _person_brief(keeper),
            "current_assignment": current.get(asset.asset_id),
            "latest_movement": latest.get(asset.asset_id),
        }
        for asset, location, keeper in rows
    ]


def _asset_rows_stmt():
    return (
        select(Asset, Location, Keeper)
        .outerjoin(Location, Asset.location_id == Location.location_id)
        .outerjoin(Keeper, Asset.keeper_payroll_number == Keeper.payroll_number)
    )


# ---- bulk assets ---------------------------------------------------------


def _bulk_conds(
    search: Optional[str],
    status: Optional[BulkStatus],
    location_id: Optional[int],
    keeper_payroll_number: Optional[str],
    low_stock_only: bool,
) -> list:
    conds = [Asset.is_bulk == True]  # noqa: E712
    s = (search or "").strip()
    if s:
        pattern = f"%{s}%"
        conds.append(or_(Asset.name.ilike(pattern), Asset.model_number.ilike(pattern)))
    if status is not None:
        conds.append(Asset.bulk_status == status)
    if location_id is not None:
        conds.append(Asset.location_id == location_id)
    if keeper_payroll_number:
        conds.append(Asset.keeper_payroll_number == keeper_payroll_number)
    if low_stock_only:
        conds.append(LOW_STOCK)
    return conds


def _restock_totals(session: Session, asset_ids: list[int]) -> dict[int, tuple[int, int]]:
    if not asset_ids:
        return {}
    rows = session.exec(
        select(RestockLog.asset_id, func.sum(RestockLog.quantity_restocked), func.count(RestockLog.log_id))
        .where(RestockLog.asset_id.in_(asset_ids))
        .group_by(RestockLog.asset_id)
    ).all()
    return {asset_id: (int(total or 0), int(events or 0)) for asset_id, total, events in rows}


def _latest_restocks(session: Session, asset_ids: list[int]) -> dict[int, dict]:
    if not asset_ids:
        return {}
    latest_ids = (
        select(func.max(RestockLog.log_id))
        .where(RestockLog.asset_id.in_(asset_ids))
        .group_by(RestockLog.asset_id)
    )
    rows = session.exec(
        select(RestockLog, Restocker)
        .outerjoin(Restocker, RestockLog.restocked_by == Restocker.payroll_number)
        .where(RestockLog.log_id.in_(latest_ids))
    ).all()
    return {
        log.asset_id: {
            "timestamp": log.timestamp,
            "quantity_restocked": log.quantity_restocked,
            "restocker": _person_brief(user),
        }
        for log, user in rows
    }


def _stock_metrics(asset: Asset, totals: tuple[int, int]) -> dict:
    total_qty, events = totals
    return {
        "is_low_stock": is_low_stock(asset.current_stock_level, asset.minimum_threshold),
        "stock_percentage": stock_percentage(asset.current_stock_level, asset.minimum_threshold),
        "total_quantity_restocked": total_qty,
        "total_restock_events": events,
        "average_restock_quantity": round(total_qty / events) if events else 0,
    }


def _tracked_bulk(session: Session, rows) -> list[dict]:
    ids = [asset.asset_id for asset, _, _ in rows]
    totals = _restock_totals(session, ids)
    latest = _latest_restocks(session, ids)
    return [
        {
            "asset_id": asset.asset_id,
            "name": asset.name,
            "bulk_status": asset.bulk_status,
            "current_stock_level": asset.current_stock_level or 0,
            "minimum_threshold": asset.minimum_threshold or 0,
            "last_restocked": asset.last_restocked,
            "model_number": asset.model_number,
            "notes": asset.notes,
            "created_at": asset.created_at,
            "updated_at": asset.updated_at,
            "location": _location_brief(location),
            "keeper": _person_brief(keeper),
            "stock_metrics": _stock_metrics(asset, totals.get(asset.asset_id, (0, 0))),
            "most_recent_restock": latest.get(asset.asset_id),
        }
        for asset, location, keeper in rows
    ]


def _restock_reads(session: Session, asset_id: int, limit: Optional[int] = None) -> list[dict]:
    stmt = (
        select(RestockLog, Restocker)
        .outerjoin(Restocker, RestockLog.restocked_by == Restocker.payroll_number)
        .where(RestockLog.asset_id == asset_id)
        .order_by(RestockLog.timestamp.desc(), RestockLog.log_id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return [
        {
            "log_id": log.log_id,
            "asset_id": log.asset_id,
            "quantity_restocked": log.quantity_restocked,
            "restocked_by": log.restocked_by,
            "restocked_by_name": user.full_name if user else None,
            "timestamp": log.timestamp,
            "notes": log.notes,
        }
        for log, user in session.exec(stmt).all()
    ]


class TrackingService:
    # ---- unique ----

    @staticmethod
    def get_tracked_unique_assets(
        session: Session,
        search: Optional[str] = None,
        status: Optional[IndividualStatus] = None,
        location_id: Optional[int] = None,
        keeper_payroll_number: Optional[str] = None,
        assigned_to: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        page, limit, offset = page_window(page, limit)
        conds = _unique_conds(search, status, location_id, keeper_payroll_number, assigned_to)

        total = session.exec(select(func.count()).select_from(Asset).where(*conds)).one()
        rows = session.exec(
            _asset_rows_stmt()
            .where(*conds)
            .order_by(Asset.updated_at.desc(), Asset.asset_id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return page_payload(_tracked_unique(session, rows), total, page, limit)

    @staticmethod
    def get_unique_asset_details(session: Session, asset_id: int) -> Optional[dict]:
        row = session.exec(
            _asset_rows_stmt().where(Asset.asset_id == asset_id, Asset.is_bulk == False)  # noqa: E712
        ).first()
        if not row:
            return None
        return _tracked_unique(session, [row])[0]

    @staticmethod
    def get_unique_asset_history(session: Session, asset_id: int) -> Optional[dict]:
        asset = session.get(Asset, asset_id)
        if not asset or asset.is_bulk:
            return None
        return {
            "asset_id": asset_id,
            "movements": movement_details(session, AssetMovement.asset_id == asset_id),
            "assignments": assignment_details(session, AssetAssignment.asset_id == asset_id),
        }

    @staticmethod
    def get_assets_needing_attention(session: Session, now: Optional[datetime] = None) -> list[dict]:
        """Unique assets out on assignment for longer than the overdue window."""
        now = now or utcnow()
        cutoff = now - timedelta(days=get_settings().overdue_after_days)
        rows = session.exec(
            select(AssetAssignment, Asset, Assignee, Location)
            .join(Asset, AssetAssignment.asset_id == Asset.asset_id)
            .join(Assignee, AssetAssignment.assigned_to == Assignee.payroll_number)
            .outerjoin(Location, Asset.location_id == Location.location_id)
            .where(
                Asset.is_bulk == False,  # noqa: E712
                AssetAssignment.date_returned.is_(None),
                AssetAssignment.date_issued < cutoff,
            )
            .order_by(AssetAssignment.date_issued.asc())
        ).all()
        return [
            {
                "asset_id": asset.asset_id,
                "asset_name": asset.name,
                "serial_number": asset.serial_number,
                "assignment_id": a.assignment_id,
                "assigned_to": a.assigned_to,
                "assigned_to_name": user.full_name,
                "date_issued": a.date_issued,
                "days_since_issued": (now - a.date_issued).days,
                "location_name": location.display_name if location else None,
            }
            for a, asset, user, location in rows
        ]

    @staticmethod
    def get_tracking_summary(session: Session) -> dict:
        counts = dict(
            session.exec(
                select(Asset.individual_status, func.count())
                .where(Asset.is_bulk == False)  # noqa: E712
                .group_by(Asset.individual_status)
            ).all()
        )
        assigned = session.exec(
            select(func.count())
            .select_from(AssetAssignment)
            .join(Asset, AssetAssignment.asset_id == Asset.asset_id)
            .where(Asset.is_bulk == False, AssetAssignment.date_returned.is_(None))  # noqa: E712
        ).one()
        return {
            "total_unique_assets": sum(counts.values()),
            "available": counts.get(IndividualStatus.available, 0),
            "in_use": counts.get(IndividualStatus.in_use, 0),
            "maintenance": counts.get(IndividualStatus.maintenance, 0),
            "disposed": counts.get(IndividualStatus.disposed, 0),
            "currently_assigned": assigned,
        }

    # ---- bulk ----

    @staticmethod
    def get_tracked_bulk_assets(
        session: Session,
        search: Optional[str] = None,
        status: Optional[BulkStatus] = None,
        location_id: Optional[int] = None,
        keeper_payroll_number: Optional[str] = None,
        low_stock_only: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        page, limit, offset = page_window(page, limit)
        conds = _bulk_conds(search, status, location_id, keeper_payroll_number, low_stock_only)

        rows = session.exec(
            _asset_rows_stmt()
            .where(*conds)
            .order_by(Asset.name.asc(), Asset.asset_id.asc())
            .offset(offset)
            .limit(limit)
        ).all()

        by_status = dict(
            session.exec(select(Asset.bulk_status, func.count()).where(*conds).group_by(Asset.bulk_status)).all()
        )
        low = session.exec(select(func.count()).select_from(Asset).where(*conds, LOW_STOCK)).one()
        total = sum(by_status.values())

        payload = page_payload(_tracked_bulk(session, rows), total, page, limit)
        payload["summary"] = {
            "total_assets": total,
            "low_stock_assets": low,
            "active_assets": by_status.get(BulkStatus.active, 0),
            "out_of_stock_assets": by_status.get(BulkStatus.out_of_stock, 0),
            "discontinued_assets": by_status.get(BulkStatus.discontinued, 0),
        }
        return payload

    @staticmethod
    def get_all_tracked_bulk_assets(session: Session, search: Optional[str] = None) -> list[dict]:
        rows = session.exec(
            _asset_rows_stmt().where(*_bulk_conds(search, None, None, None, False)).order_by(Asset.asset_id.asc())
        ).all()
        return _tracked_bulk(session, rows)

    @staticmethod
    def get_bulk_asset_details(session: Session, asset_id: int) -> Optional[dict]:
        row = session.exec(
            _asset_rows_stmt().where(Asset.asset_id == asset_id, Asset.is_bulk == True)  # noqa: E712
        ).first()
        if not row:
            return None

        details = _tracked_bulk(session, [row])[0]
        details["recent_restocks"] = _restock_reads(session, asset_id, limit=10)
        details["recent_movements"] = movement_details(session, AssetMovement.asset_id == asset_id, limit=10)

        assignments = session.exec(
            select(AssetAssignment)
            .where(AssetAssignment.asset_id == asset_id)
            .order_by(AssetAssignment.date_issued.desc(), AssetAssignment.assignment_id.desc())
            .limit(10)
        ).all()
        details["recent_assignments"] = [
            {
                **a.model_dump(exclude={"open_asset_id", "asset_id", "date_due"}),
                "quantity_outstanding": a.quantity_outstanding,
                "is_active": a.is_active,
            }
            for a in assignments
        ]
        return details

    @staticmethod
    def get_bulk_restock_history(session: Session, asset_id: int) -> Optional[list[dict]]:
        asset = session.get(Asset, asset_id)
        if not asset or not asset.is_bulk:
            return None
        return _restock_reads(session, asset_id)

    @staticmethod
    def get_low_stock_assets(session: Session) -> list[dict]:
        assets = session.exec(
            select(Asset)
            .where(Asset.is_bulk == True, LOW_STOCK)  # noqa: E712
            .order_by(Asset.current_stock_level.asc(), Asset.name.asc())
        ).all()
        return [
            {
                "asset_id": a.asset_id,
                "name": a.name,
                "current_stock_level": a.current_stock_level or 0,
                "minimum_threshold": a.minimum_threshold or 0,
            }
            for a in assets
        ]
