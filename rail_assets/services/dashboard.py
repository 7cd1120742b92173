from sqlalchemy import func
from sqlmodel import Session, select

from rail_assets.models import Asset, IndividualStatus, User
from rail_assets.services.movements import movement_details
from rail_assets.services.tracking import LOW_STOCK


class DashboardService:
    @staticmethod
    def get_unique_asset_stats(session: Session) -> dict:
        def count_unique(*conds) -> int:
            stmt = select(func.count()).select_from(Asset).where(Asset.is_bulk == False, *conds)  # noqa: E712
            return session.exec(stmt).one()

        return {
            "total_unique": count_unique(),
            "assigned_unique": count_unique(Asset.individual_status == IndividualStatus.in_use),
            "available_unique": count_unique(Asset.individual_status == IndividualStatus.available),
        }

    @staticmethod
    def get_bulk_asset_stats(session: Session) -> dict:
        total_units = session.exec(
            select(func.coalesce(func.sum(Asset.current_stock_level), 0)).where(Asset.is_bulk == True)  # noqa: E712
        ).one()
        low = session.exec(
            select(func.count()).select_from(Asset).where(Asset.is_bulk == True, LOW_STOCK)  # noqa: E712
        ).one()
        return {"total_bulk": int(total_units), "low_stock_count": low}

    @staticmethod
    def get_top_keepers(session: Session, limit: int = 3) -> list[dict]:
        asset_count = func.count(Asset.asset_id)
        rows = session.exec(
            select(User.payroll_number, User.first_name, User.last_name, asset_count)
            .outerjoin(Asset, Asset.keeper_payroll_number == User.payroll_number)
            .group_by(User.payroll_number, User.first_name, User.last_name)
            .order_by(asset_count.desc(), User.payroll_number.asc())
            .limit(limit)
        ).all()
        return [
            {"payroll_number": p, "first_name": f, "last_name": last, "asset_count": int(n or 0)}
            for p, f, last, n in rows
        ]

    @staticmethod
    def get_recent_movements(session: Session, limit: int = 5) -> list[dict]:
        return movement_details(session, limit=limit)
