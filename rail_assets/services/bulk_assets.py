import logging
from typing import Optional

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from rail_assets.models import (
    Asset,
    AssetAssignment,
    AssetMovement,
    Location,
    MovementType,
    RestockLog,
    User,
    utcnow,
)
from rail_assets.schemas import BulkAssetCreate, BulkAssetUpdate, ServiceResult
from rail_assets.services.ledger import (
    build_note,
    bulk_status_for,
    lock_asset,
    record_movement,
    record_restock,
)
from rail_assets.services.paging import page_payload, page_window

logger = logging.getLogger(__name__)


def _validate_create(data: BulkAssetCreate) -> Optional[str]:
    if not data.name or not data.name.strip():
        return "Asset name is required"
    if not data.keeper_payroll_number or not data.keeper_payroll_number.strip():
        return "Keeper payroll number is required"
    if data.quantity < 0:
        return "Quantity cannot be negative"
    if data.minimum_threshold < 0:
        return "Minimum threshold cannot be negative"
    return None


def delete_asset_rows(session: Session, asset_id: int) -> None:
    """Remove an asset together with its journal and assignment rows (no commit)."""
    session.exec(delete(AssetMovement).where(AssetMovement.asset_id == asset_id))
    session.exec(delete(RestockLog).where(RestockLog.asset_id == asset_id))
    session.exec(delete(AssetAssignment).where(AssetAssignment.asset_id == asset_id))
    session.exec(delete(Asset).where(Asset.asset_id == asset_id))


class BulkAssetService:
    @staticmethod
    def create_bulk_asset(
        session: Session, data: BulkAssetCreate, created_by: Optional[str] = None
    ) -> ServiceResult:
        error = _validate_create(data)
        if error:
            return ServiceResult.fail(error)

        keeper_id = data.keeper_payroll_number.strip()
        try:
            if not session.get(User, keeper_id):
                return ServiceResult.fail(
                    f"Keeper with payroll number '{keeper_id}' not found", "NOT_FOUND"
                )
            if not session.get(Location, data.location_id):
                return ServiceResult.fail(f"Location with ID '{data.location_id}' not found", "NOT_FOUND")

            now = utcnow()
            asset = Asset(
                name=data.name.strip(),
                is_bulk=True,
                location_id=data.location_id,
                keeper_payroll_number=keeper_id,
                model_number=(data.model_number or "").strip() or None,
                notes=data.notes,
                current_stock_level=data.quantity,
                minimum_threshold=data.minimum_threshold,
                last_restocked=data.last_restocked or now,
                bulk_status=bulk_status_for(data.quantity),
            )
            session.add(asset)
            session.flush()

            record_movement(
                session,
                asset_id=asset.asset_id,
                moved_by=created_by or keeper_id,
                movement_type=MovementType.adjustment,
                quantity=data.quantity,
                to_location_id=data.location_id,
                notes=build_note("initial", data.quantity, 0, data.quantity, data.notes or "Initial creation"),
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to create bulk asset %r", data.name)
            return ServiceResult.fail("Failed to create bulk asset", "INTERNAL_ERROR")

        session.refresh(asset)
        logger.info("created bulk asset %s with %s units", asset.asset_id, asset.current_stock_level)
        return ServiceResult.ok("Bulk asset created successfully", asset)

    @staticmethod
    def get_bulk_asset(session: Session, asset_id: int) -> Optional[Asset]:
        asset = session.get(Asset, asset_id)
        if not asset or not asset.is_bulk:
            return None
        return asset

    @staticmethod
    def update_bulk_asset(
        session: Session, asset_id: int, data: BulkAssetUpdate, updated_by: str
    ) -> ServiceResult:
        changes = data.model_dump(exclude_unset=True)
        if changes.get("quantity") is not None and changes["quantity"] < 0:
            return ServiceResult.fail("Quantity cannot be negative")
        if changes.get("minimum_threshold") is not None and changes["minimum_threshold"] < 0:
            return ServiceResult.fail("Minimum threshold cannot be negative")
        if "name" in changes and not (changes["name"] or "").strip():
            return ServiceResult.fail("Asset name is required")

        try:
            asset = lock_asset(session, asset_id)
            if not asset or not asset.is_bulk:
                return ServiceResult.fail("Bulk asset not found", "NOT_FOUND")

            old_qty = asset.current_stock_level or 0
            old_location = asset.location_id
            old_keeper = asset.keeper_payroll_number
            now = utcnow()

            new_location = changes.get("location_id")
            if new_location is not None and new_location != old_location:
                if not session.get(Location, new_location):
                    return ServiceResult.fail("Location not found", "NOT_FOUND")
            new_keeper = changes.get("keeper_payroll_number")
            if new_keeper is not None and new_keeper != old_keeper:
                if not session.get(User, new_keeper):
                    return ServiceResult.fail("Keeper not found", "NOT_FOUND")

            if changes.get("name"):
                asset.name = changes["name"].strip()
            if "model_number" in changes:
                asset.model_number = changes["model_number"]
            if "notes" in changes:
                asset.notes = changes["notes"]
            if changes.get("minimum_threshold") is not None:
                asset.minimum_threshold = changes["minimum_threshold"]
            if changes.get("bulk_status") is not None:
                asset.bulk_status = changes["bulk_status"]

            new_qty = changes.get("quantity")
            if new_qty is not None:
                asset.current_stock_level = new_qty
                asset.bulk_status = bulk_status_for(new_qty, asset.bulk_status)
                delta = new_qty - old_qty
                if delta:
                    kind = "restock" if delta > 0 else "consume"
                    record_movement(
                        session,
                        asset_id=asset_id,
                        moved_by=updated_by,
                        movement_type=MovementType.adjustment,
                        quantity=abs(delta),
                        from_location_id=old_location if delta < 0 else None,
                        to_location_id=old_location if delta > 0 else None,
                        notes=build_note(kind, abs(delta), old_qty, new_qty, changes.get("notes")),
                    )
                if delta > 0:
                    record_restock(
                        session,
                        asset_id=asset_id,
                        quantity=delta,
                        restocked_by=updated_by,
                        notes="Stock increased via asset update",
                    )
                    asset.last_restocked = now

            if new_location is not None and new_location != old_location:
                asset.location_id = new_location
                record_movement(
                    session,
                    asset_id=asset_id,
                    moved_by=updated_by,
                    movement_type=MovementType.transfer,
                    quantity=asset.current_stock_level or 0,
                    from_location_id=old_location,
                    to_location_id=new_location,
                    notes="Location changed via asset update",
                )

            if new_keeper is not None and new_keeper != old_keeper:
                asset.keeper_payroll_number = new_keeper
                record_movement(
                    session,
                    asset_id=asset_id,
                    moved_by=updated_by,
                    movement_type=MovementType.assignment,
                    quantity=asset.current_stock_level or 0,
                    from_location_id=asset.location_id,
                    to_location_id=asset.location_id,
                    notes=f"Keeper changed from {old_keeper or 'none'} to {new_keeper}",
                )

            asset.updated_at = now
            session.add(asset)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to update bulk asset %s", asset_id)
            return ServiceResult.fail("Failed to update bulk asset", "INTERNAL_ERROR")

        session.refresh(asset)
        logger.info(
            "bulk asset %s updated by %s: stock %s -> %s",
            asset_id, updated_by, old_qty, asset.current_stock_level,
        )
        return ServiceResult.ok("Bulk asset updated successfully", asset)

    @staticmethod
    def restock(
        session: Session, asset_id: int, quantity: int, restocked_by: str, notes: Optional[str] = None
    ) -> ServiceResult:
        if quantity <= 0:
            return ServiceResult.fail("Restock quantity must be greater than zero")

        try:
            asset = lock_asset(session, asset_id)
            if not asset or not asset.is_bulk:
                return ServiceResult.fail("Bulk asset not found", "NOT_FOUND")

            old_qty = asset.current_stock_level or 0
            new_qty = old_qty + quantity
            now = utcnow()

            asset.current_stock_level = new_qty
            asset.bulk_status = bulk_status_for(new_qty, asset.bulk_status)
            asset.last_restocked = now
            asset.updated_at = now
            session.add(asset)

            record_restock(
                session, asset_id=asset_id, quantity=quantity, restocked_by=restocked_by, notes=notes
            )
            record_movement(
                session,
                asset_id=asset_id,
                moved_by=restocked_by,
                movement_type=MovementType.adjustment,
                quantity=quantity,
                to_location_id=asset.location_id,
                notes=build_note("restock", quantity, old_qty, new_qty, notes),
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to restock bulk asset %s", asset_id)
            return ServiceResult.fail("Failed to restock asset", "INTERNAL_ERROR")

        session.refresh(asset)
        logger.info("bulk asset %s restocked by %s: +%s", asset_id, restocked_by, quantity)
        return ServiceResult.ok("Asset restocked successfully", asset)

    @staticmethod
    def list_bulk_assets(session: Session, page: int = 1, limit: int = 10) -> dict:
        page, limit, offset = page_window(page, limit)
        total = session.exec(
            select(func.count()).select_from(Asset).where(Asset.is_bulk == True)  # noqa: E712
        ).one()
        items = session.exec(
            select(Asset)
            .where(Asset.is_bulk == True)  # noqa: E712
            .order_by(Asset.asset_id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return page_payload(items, total, page, limit)

    @staticmethod
    def delete_bulk_asset(session: Session, asset_id: int) -> ServiceResult:
        asset = session.get(Asset, asset_id)
        if not asset or not asset.is_bulk:
            return ServiceResult.fail("Bulk asset not found", "NOT_FOUND")

        try:
            delete_asset_rows(session, asset_id)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to delete bulk asset %s", asset_id)
            return ServiceResult.fail("Failed to delete bulk asset", "INTERNAL_ERROR")

        logger.info("deleted bulk asset %s", asset_id)
        return ServiceResult.ok("Bulk asset deleted successfully", {"asset_id": asset_id})


