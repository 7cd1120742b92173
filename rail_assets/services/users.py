import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from rail_assets.config import get_settings
from rail_assets.models import Asset, AssetAssignment, Location, User, UserRole, utcnow
from rail_assets.schemas import ServiceResult, UserCreate, UserUpdate
from rail_assets.security import hash_password
from rail_assets.services.locations import LocationService
from rail_assets.services.paging import page_payload, page_window

logger = logging.getLogger(__name__)


def _resolve_default_location(
    session: Session,
    location_id: Optional[int],
    department_name: Optional[str],
    region_name: Optional[str],
) -> ServiceResult:
    """Pick the user's home location: explicit id wins, otherwise (department, region)."""
    if location_id is not None:
        location = session.get(Location, location_id)
        if not location:
            return ServiceResult.fail("Default location not found", "NOT_FOUND")
        return ServiceResult.ok(data=location)

    dept = (department_name or "").strip()
    region = (region_name or "").strip()
    if dept and region:
        return ServiceResult.ok(data=LocationService.find_or_create(session, dept, region))
    if dept or region:
        return ServiceResult.fail("Both department_name and region_name are required")
    return ServiceResult.ok(data=None)


def _user_filters(search: Optional[str], role: Optional[UserRole]) -> list:
    conds = []
    s = (search or "").strip()
    if s:
        pattern = f"%{s}%"
        conds.append(
            or_(
                User.payroll_number.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            )
        )
    if role is not None:
        conds.append(User.role == role)
    return conds


class UserService:
    @staticmethod
    def create_user(session: Session, data: UserCreate) -> ServiceResult:
        payroll = data.payroll_number.strip()
        if session.get(User, payroll):
            return ServiceResult.fail("User with this payroll number already exists", "ALREADY_EXISTS")

        try:
            resolved = _resolve_default_location(
                session, data.default_location_id, data.department_name, data.region_name
            )
            if not resolved.success:
                session.rollback()
                return resolved
            location = resolved.data

            user = User(
                payroll_number=payroll,
                first_name=data.first_name.strip(),
                last_name=data.last_name.strip(),
                role=data.role,
                password_hash=hash_password(data.password or get_settings().default_user_password),
                must_change_password=True,
                default_location_id=location.location_id if location else None,
            )
            session.add(user)
            session.commit()
        except IntegrityError:
            session.rollback()
            return ServiceResult.fail("User with this payroll number already exists", "ALREADY_EXISTS")
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to create user %s", payroll)
            return ServiceResult.fail("Failed to create user", "INTERNAL_ERROR")

        session.refresh(user)
        logger.info("created user %s (%s)", user.payroll_number, user.role.value)
        return ServiceResult.ok("User created successfully", user)

    @staticmethod
    def get_user(session: Session, payroll_number: str) -> Optional[User]:
        return session.get(User, payroll_number)

    @staticmethod
    def update_user(session: Session, payroll_number: str, data: UserUpdate) -> ServiceResult:
        user = session.get(User, payroll_number)
        if not user:
            return ServiceResult.fail("User not found", "NOT_FOUND")

        changes = data.model_dump(exclude_unset=True)
        try:
            if {"default_location_id", "department_name", "region_name"} & changes.keys():
                resolved = _resolve_default_location(
                    session,
                    changes.get("default_location_id"),
                    changes.get("department_name"),
                    changes.get("region_name"),
                )
                if not resolved.success:
                    session.rollback()
                    return resolved
                user.default_location_id = resolved.data.location_id if resolved.data else None

            for field in ("first_name", "last_name"):
                if changes.get(field):
                    setattr(user, field, changes[field].strip())
            if changes.get("role") is not None:
                user.role = changes["role"]
            user.updated_at = utcnow()

            session.add(user)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to update user %s", payroll_number)
            return ServiceResult.fail("Failed to update user", "INTERNAL_ERROR")

        session.refresh(user)
        return ServiceResult.ok("User updated successfully", user)

    @staticmethod
    def delete_user(session: Session, payroll_number: str) -> ServiceResult:
        user = session.get(User, payroll_number)
        if not user:
            return ServiceResult.fail("User not found", "NOT_FOUND")

        kept = session.exec(
            select(func.count()).select_from(Asset).where(Asset.keeper_payroll_number == payroll_number)
        ).one()
        assigned = session.exec(
            select(func.count())
            .select_from(AssetAssignment)
            .where(
                or_(
                    AssetAssignment.assigned_to == payroll_number,
                    AssetAssignment.assigned_by == payroll_number,
                )
            )
        ).one()
        if kept or assigned:
            return ServiceResult.fail(
                "User still keeps assets or appears on assignments and cannot be deleted",
                "CONFLICT",
            )

        try:
            session.delete(user)
            session.commit()
        except IntegrityError:
            # movement or restock rows still name this user
            session.rollback()
            return ServiceResult.fail("User is referenced by asset history and cannot be deleted", "CONFLICT")
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to delete user %s", payroll_number)
            return ServiceResult.fail("Failed to delete user", "INTERNAL_ERROR")

        logger.info("deleted user %s", payroll_number)
        return ServiceResult.ok("User deleted successfully")

    @staticmethod
    def list_users(
        session: Session,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        page, limit, offset = page_window(page, limit)
        conds = _user_filters(search, role)

        count_stmt = select(func.count()).select_from(User)
        stmt = select(User)
        if conds:
            count_stmt = count_stmt.where(*conds)
            stmt = stmt.where(*conds)

        total = session.exec(count_stmt).one()
        stmt = stmt.order_by(User.last_name.asc(), User.first_name.asc(), User.payroll_number.asc())
        items = session.exec(stmt.offset(offset).limit(limit)).all()
        return page_payload(items, total, page, limit)

    @staticmethod
    def list_user_options(session: Session, role: Optional[UserRole] = None) -> list[dict]:
        stmt = select(User).order_by(User.first_name.asc(), User.last_name.asc())
        if role is not None:
            stmt = stmt.where(User.role == role)
        return [
            {"payroll_number": u.payroll_number, "name": u.full_name, "role": u.role}
            for u in session.exec(stmt).all()
        ]
