import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from rail_assets.models import Asset, AssetMovement, Location, User, utcnow
from rail_assets.schemas import LocationCreate, LocationUpdate, ServiceResult
from rail_assets.services.paging import page_payload, page_window

logger = logging.getLogger(__name__)


def _search_conds(search: Optional[str]) -> list:
    s = (search or "").strip()
    if not s:
        return []
    pattern = f"%{s}%"
    return [or_(Location.region_name.ilike(pattern), Location.department_name.ilike(pattern))]


class LocationService:
    @staticmethod
    def get(session: Session, location_id: int) -> Optional[Location]:
        return session.get(Location, location_id)

    @staticmethod
    def create(session: Session, data: LocationCreate) -> ServiceResult:
        location = Location(
            region_name=data.region_name.strip(),
            department_name=data.department_name.strip(),
            notes=data.notes,
        )
        try:
            session.add(location)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to create location")
            return ServiceResult.fail("Failed to create location", "INTERNAL_ERROR")
        session.refresh(location)
        return ServiceResult.ok("Location created successfully", location)

    @staticmethod
    def update(session: Session, location_id: int, data: LocationUpdate) -> ServiceResult:
        location = session.get(Location, location_id)
        if not location:
            return ServiceResult.fail("Location not found", "NOT_FOUND")

        changes = data.model_dump(exclude_unset=True)
        names = {}
        for field in ("region_name", "department_name"):
            if field in changes:
                names[field] = (changes[field] or "").strip()
                if not names[field]:
                    return ServiceResult.fail(f"{field} cannot be empty")
        for field, value in names.items():
            setattr(location, field, value)
        if "notes" in changes:
            location.notes = changes["notes"]
        location.updated_at = utcnow()

        try:
            session.add(location)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to update location %s", location_id)
            return ServiceResult.fail("Failed to update location", "INTERNAL_ERROR")
        session.refresh(location)
        return ServiceResult.ok("Location updated successfully", location)

    @staticmethod
    def delete(session: Session, location_id: int) -> ServiceResult:
        location = session.get(Location, location_id)
        if not location:
            return ServiceResult.fail("Location not found", "NOT_FOUND")

        in_use = session.exec(
            select(func.count()).select_from(Asset).where(Asset.location_id == location_id)
        ).one()
        homed = session.exec(
            select(func.count()).select_from(User).where(User.default_location_id == location_id)
        ).one()
        logged = session.exec(
            select(func.count())
            .select_from(AssetMovement)
            .where(or_(AssetMovement.from_location_id == location_id, AssetMovement.to_location_id == location_id))
        ).one()
        if in_use or homed or logged:
            return ServiceResult.fail(
                f"Location is still referenced by {in_use} asset(s), {homed} user(s) and {logged} movement(s)",
                "CONFLICT",
            )

        try:
            session.delete(location)
            session.commit()
        except IntegrityError:
            session.rollback()
            return ServiceResult.fail("Location is still referenced by other records", "CONFLICT")
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to delete location %s", location_id)
            return ServiceResult.fail("Failed to delete location", "INTERNAL_ERROR")
        return ServiceResult.ok("Location deleted successfully")

    @staticmethod
    def count(session: Session, search: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Location)
        conds = _search_conds(search)
        if conds:
            stmt = stmt.where(*conds)
        return session.exec(stmt).one()

    @staticmethod
    def list(session: Session, search: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
        page, limit, offset = page_window(page, limit)
        stmt = select(Location)
        conds = _search_conds(search)
        if conds:
            stmt = stmt.where(*conds)
        stmt = stmt.order_by(Location.region_name.asc(), Location.department_name.asc())
        items = session.exec(stmt.offset(offset).limit(limit)).all()
        return page_payload(items, LocationService.count(session, search), page, limit)

    @staticmethod
    def find_or_create(session: Session, department_name: str, region_name: str) -> Location:
        """Match on (department, region) ignoring case; add a new row when absent.

        Flushes but does not commit, so callers can fold it into their own transaction.
        """
        dept = department_name.strip()
        region = region_name.strip()
        existing = session.exec(
            select(Location).where(
                func.lower(Location.department_name) == dept.lower(),
                func.lower(Location.region_name) == region.lower(),
            )
        ).first()
        if existing:
            return existing

        location = Location(department_name=dept, region_name=region)
        session.add(location)
        session.flush()
        logger.info("created location %s for %s / %s", location.location_id, region, dept)
        return location
