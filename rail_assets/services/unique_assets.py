import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from rail_assets.models import (
    Asset,
    AssetAssignment,
    IndividualStatus,
    Location,
    MovementType,
    User,
    utcnow,
)
from rail_assets.schemas import ServiceResult, UniqueAssetCreate, UniqueAssetUpdate
from rail_assets.services.bulk_assets import delete_asset_rows
from rail_assets.services.ledger import lock_asset, record_movement
from rail_assets.services.paging import page_payload, page_window

logger = logging.getLogger(__name__)


def _serial_taken(session: Session, serial: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Asset.asset_id).where(Asset.serial_number == serial)
    if exclude_id is not None:
        stmt = stmt.where(Asset.asset_id != exclude_id)
    return session.exec(stmt).first() is not None


def _has_open_assignment(session: Session, asset_id: int) -> bool:
    stmt = select(AssetAssignment.assignment_id).where(
        AssetAssignment.asset_id == asset_id,
        AssetAssignment.date_returned.is_(None),
    )
    return session.exec(stmt).first() is not None


def _unique_filters(
    status: Optional[IndividualStatus],
    location_id: Optional[int],
    keeper_payroll_number: Optional[str],
) -> list:
    conds = [Asset.is_bulk == False]  # noqa: E712
    if status is not None:
        conds.append(Asset.individual_status == status)
    if location_id is not None:
        conds.append(Asset.location_id == location_id)
    if keeper_payroll_number:
        conds.append(Asset.keeper_payroll_number == keeper_payroll_number)
    return conds


class UniqueAssetService:
    @staticmethod
    def create_unique_asset(session: Session, data: UniqueAssetCreate, created_by: str) -> ServiceResult:
        name = (data.name or "").strip()
        serial = (data.serial_number or "").strip()
        if not name:
            return ServiceResult.fail("Asset name is required")
        if not serial:
            return ServiceResult.fail("Serial number is required for unique assets")

        keeper_id = (data.keeper_payroll_number or "").strip() or None
        try:
            if not session.get(Location, data.location_id):
                return ServiceResult.fail(f"Location with ID '{data.location_id}' not found", "NOT_FOUND")
            if keeper_id and not session.get(User, keeper_id):
                return ServiceResult.fail(f"Keeper with payroll number '{keeper_id}' not found", "NOT_FOUND")
            if _serial_taken(session, serial):
                return ServiceResult.fail(f"Serial number '{serial}' already exists", "ALREADY_EXISTS")

            asset = Asset(
                name=name,
                is_bulk=False,
                location_id=data.location_id,
                keeper_payroll_number=keeper_id,
                serial_number=serial,
                individual_status=data.individual_status,
                model_number=(data.model_number or "").strip() or None,
                notes=data.notes,
            )
            session.add(asset)
            session.flush()

            record_movement(
                session,
                asset_id=asset.asset_id,
                moved_by=created_by,
                movement_type=MovementType.transfer,
                to_location_id=data.location_id,
                notes=f"Initial asset creation. {data.notes or ''}".strip(),
            )
            session.commit()
        except IntegrityError:
            # lost a race on the serial number
            session.rollback()
            return ServiceResult.fail(f"Serial number '{serial}' already exists", "ALREADY_EXISTS")
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to create unique asset %r", serial)
            return ServiceResult.fail("Failed to create asset", "INTERNAL_ERROR")

        session.refresh(asset)
        logger.info("created unique asset %s (%s) by %s", asset.asset_id, serial, created_by)
        return ServiceResult.ok("Asset created successfully", asset)

    @staticmethod
    def get_unique_asset(session: Session, asset_id: int) -> Optional[Asset]:
        asset = session.get(Asset, asset_id)
        if not asset or asset.is_bulk:
            return None
        return asset

    @staticmethod
    def update_unique_asset(
        session: Session, asset_id: int, data: UniqueAssetUpdate, updated_by: str
    ) -> ServiceResult:
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and not (changes["name"] or "").strip():
            return ServiceResult.fail("Asset name cannot be empty")
        if "serial_number" in changes and not (changes["serial_number"] or "").strip():
            return ServiceResult.fail("Serial number cannot be empty")

        try:
            asset = lock_asset(session, asset_id)
            if not asset or asset.is_bulk:
                return ServiceResult.fail("Unique asset not found", "NOT_FOUND")

            serial = (changes.get("serial_number") or "").strip()
            if serial and serial != asset.serial_number and _serial_taken(session, serial, asset_id):
                return ServiceResult.fail(f"Serial number '{serial}' already exists", "ALREADY_EXISTS")

            old_keeper = asset.keeper_payroll_number
            new_keeper = old_keeper
            if "keeper_payroll_number" in changes:
                new_keeper = (changes["keeper_payroll_number"] or "").strip() or None
                if new_keeper and new_keeper != old_keeper and not session.get(User, new_keeper):
                    return ServiceResult.fail(f"Keeper with payroll number '{new_keeper}' not found", "NOT_FOUND")

            old_status = asset.individual_status
            new_status = changes.get("individual_status") or old_status
            if new_status == IndividualStatus.disposed and old_status != new_status:
                if _has_open_assignment(session, asset_id):
                    return ServiceResult.fail("Asset is currently assigned; return it before disposal", "CONFLICT")

            if changes.get("name"):
                asset.name = changes["name"].strip()
            if serial:
                asset.serial_number = serial
            if "model_number" in changes:
                asset.model_number = (changes["model_number"] or "").strip() or None
            if "notes" in changes:
                asset.notes = changes["notes"]
            asset.keeper_payroll_number = new_keeper
            asset.individual_status = new_status
            asset.updated_at = utcnow()
            session.add(asset)

            if new_keeper != old_keeper:
                record_movement(
                    session,
                    asset_id=asset_id,
                    moved_by=updated_by,
                    movement_type=MovementType.assignment,
                    from_location_id=asset.location_id,
                    to_location_id=asset.location_id,
                    notes=f"Keeper changed from {old_keeper or 'none'} to {new_keeper or 'none'}",
                )
            if new_status == IndividualStatus.disposed and old_status != new_status:
                record_movement(
                    session,
                    asset_id=asset_id,
                    moved_by=updated_by,
                    movement_type=MovementType.disposal,
                    from_location_id=asset.location_id,
                    notes=changes.get("notes") or "Asset disposed",
                )
            session.commit()
        except IntegrityError:
            session.rollback()
            return ServiceResult.fail("Serial number already exists", "ALREADY_EXISTS")
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to update unique asset %s", asset_id)
            return ServiceResult.fail("Failed to update asset", "INTERNAL_ERROR")

        session.refresh(asset)
        if new_keeper != old_keeper:
            logger.info("asset %s keeper %s -> %s by %s", asset_id, old_keeper, new_keeper, updated_by)
        if new_status == IndividualStatus.disposed and old_status != new_status:
            logger.info("asset %s disposed by %s", asset_id, updated_by)
        return ServiceResult.ok("Asset updated successfully", asset)

    @staticmethod
    def transfer_asset(
        session: Session, asset_id: int, to_location_id: int, moved_by: str, notes: Optional[str] = None
    ) -> ServiceResult:
        try:
            asset = lock_asset(session, asset_id)
            if not asset or asset.is_bulk:
                return ServiceResult.fail("Unique asset not found", "NOT_FOUND")
            if asset.individual_status == IndividualStatus.disposed:
                return ServiceResult.fail("Disposed assets cannot be transferred")
            if not session.get(Location, to_location_id):
                return ServiceResult.fail("Destination location not found", "NOT_FOUND")
            if asset.location_id == to_location_id:
                return ServiceResult.fail("Asset is already at this location", "SAME_LOCATION")

            from_location_id = asset.location_id
            asset.location_id = to_location_id
            asset.updated_at = utcnow()
            session.add(asset)
            record_movement(
                session,
                asset_id=asset_id,
                moved_by=moved_by,
                movement_type=MovementType.transfer,
                from_location_id=from_location_id,
                to_location_id=to_location_id,
                notes=notes,
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to transfer asset %s", asset_id)
            return ServiceResult.fail("Failed to transfer asset", "INTERNAL_ERROR")

        session.refresh(asset)
        logger.info("asset %s moved %s -> %s by %s", asset_id, from_location_id, to_location_id, moved_by)
        return ServiceResult.ok("Asset transferred successfully", asset)

    @staticmethod
    def delete_unique_asset(session: Session, asset_id: int) -> ServiceResult:
        asset = session.get(Asset, asset_id)
        if not asset or asset.is_bulk:
            return ServiceResult.fail("Unique asset not found", "NOT_FOUND")

        serial = asset.serial_number
        try:
            delete_asset_rows(session, asset_id)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to delete unique asset %s", asset_id)
            return ServiceResult.fail("Failed to delete asset", "INTERNAL_ERROR")

        logger.info("deleted unique asset %s (%s)", asset_id, serial)
        return ServiceResult.ok("Asset deleted successfully", {"asset_id": asset_id, "serial_number": serial})

    @staticmethod
    def list_unique_assets(
        session: Session,
        page: int = 1,
        limit: int = 10,
        status: Optional[IndividualStatus] = None,
        location_id: Optional[int] = None,
        keeper_payroll_number: Optional[str] = None,
    ) -> dict:
        page, limit, offset = page_window(page, limit)
        conds = _unique_filters(status, location_id, keeper_payroll_number)

        total = session.exec(select(func.count()).select_from(Asset).where(*conds)).one()
        items = session.exec(
            select(Asset)
            .where(*conds)
            .order_by(Asset.created_at.asc(), Asset.asset_id.asc())
            .offset(offset)
            .limit(limit)
        ).all()
        return page_payload(items, total, page, limit)

    @staticmethod
    def all_unique_assets(
        session: Session,
        status: Optional[IndividualStatus] = None,
        location_id: Optional[int] = None,
        keeper_payroll_number: Optional[str] = None,
    ) -> list[Asset]:
        conds = _unique_filters(status, location_id, keeper_payroll_number)
        return session.exec(select(Asset).where(*conds).order_by(Asset.asset_id.asc())).all()
