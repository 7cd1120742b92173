"""Issuing assets to staff, taking them back, and the queries behind the assignment screens.

Every write runs in a single transaction on the session it is given. The asset row
is read FOR UPDATE before any stock or custody check; for unique assets the
``open_asset_id`` unique column turns a racing second assignment into an
IntegrityError, reported the same way as the pre-check.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from rail_assets.models import (
    Asset,
    AssetAssignment,
    AssetMovement,
    BulkStatus,
    IndividualStatus,
    Location,
    MovementType,
    User,
    utcnow,
)
from rail_assets.schemas import (
    AssignmentCreate,
    AssignmentKind,
    AssignmentReturn,
    AssignmentSort,
    AssignmentStatus,
    ServiceResult,
    SortOrder,
)
from rail_assets.services.ledger import build_note, bulk_status_for, lock_asset, record_movement
from rail_assets.services.paging import page_payload, page_window

logger = logging.getLogger(__name__)

ALREADY_ASSIGNED = "Asset is already assigned"

AssignedTo = aliased(User, name="assigned_to_user")
AssignedBy = aliased(User, name="assigned_by_user")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _rollback_fail(session: Session, message: str, code: str = "BAD_REQUEST") -> ServiceResult:
    # release the row lock taken by lock_asset
    session.rollback()
    return ServiceResult.fail(message, code)


def _open_assignment(session: Session, asset_id: int) -> Optional[AssetAssignment]:
    return session.exec(
        select(AssetAssignment).where(
            AssetAssignment.asset_id == asset_id,
            AssetAssignment.date_returned.is_(None),
        )
    ).first()


def _locked_assignment(session: Session, assignment_id: int):
    """Lock the assignment's asset, then re-read the assignment under that lock."""
    assignment = session.get(AssetAssignment, assignment_id)
    if not assignment:
        return None, None
    asset = lock_asset(session, assignment.asset_id)
    assignment = session.exec(
        select(AssetAssignment)
        .where(AssetAssignment.assignment_id == assignment_id)
        .execution_options(populate_existing=True)
    ).first()
    return assignment, asset


def _issued_from(session: Session, assignment: AssetAssignment) -> Optional[int]:
    # the movement written at issue time shares its timestamp with date_issued
    return session.exec(
        select(AssetMovement.from_location_id).where(
            AssetMovement.asset_id == assignment.asset_id,
            AssetMovement.movement_type == MovementType.assignment,
            AssetMovement.timestamp == assignment.date_issued,
        )
    ).first()


def _full_name(user_alias):
    return user_alias.first_name + " " + user_alias.last_name


def _joined(stmt):
    return (
        stmt.join(Asset, AssetAssignment.asset_id == Asset.asset_id)
        .join(AssignedTo, AssetAssignment.assigned_to == AssignedTo.payroll_number)
        .join(AssignedBy, AssetAssignment.assigned_by == AssignedBy.payroll_number)
        .join(Location, Asset.location_id == Location.location_id)
    )


def _detail(assignment: AssetAssignment, asset: Asset, to_user: User, by_user: User, location: Location) -> dict:
    return {
        "assignment_id": assignment.assignment_id,
        "asset_id": asset.asset_id,
        "asset_name": asset.name,
        "serial_number": asset.serial_number,
        "is_bulk": asset.is_bulk,
        "assigned_to": assignment.assigned_to,
        "assigned_to_name": to_user.full_name,
        "assigned_by": assignment.assigned_by,
        "assigned_by_name": by_user.full_name,
        "date_issued": assignment.date_issued,
        "date_due": assignment.date_due,
        "condition_issued": assignment.condition_issued,
        "notes": assignment.notes,
        "quantity": assignment.quantity,
        "quantity_returned": assignment.quantity_returned,
        "quantity_remaining": assignment.quantity_outstanding,
        "status": AssignmentStatus.active if assignment.is_active else AssignmentStatus.returned,
        "date_returned": assignment.date_returned,
        "condition_returned": assignment.condition_returned,
        "location_name": location.display_name,
    }


def assignment_details(session: Session, *conds, limit: Optional[int] = None) -> list[dict]:
    """Joined assignment rows, newest issue first."""
    stmt = _joined(select(AssetAssignment, Asset, AssignedTo, AssignedBy, Location))
    if conds:
        stmt = stmt.where(*conds)
    stmt = stmt.order_by(AssetAssignment.date_issued.desc(), AssetAssignment.assignment_id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return [_detail(*row) for row in session.exec(stmt).all()]


def _list_filters(
    kind: Optional[AssignmentKind],
    assigned_by: Optional[str],
    assigned_to: Optional[str],
    search: Optional[str],
    status: Optional[AssignmentStatus],
) -> list:
    conds = []
    if kind is not None:
        conds.append(Asset.is_bulk == (kind == AssignmentKind.bulk))
    if assigned_by:
        conds.append(AssetAssignment.assigned_by == assigned_by)
    if assigned_to:
        conds.append(AssetAssignment.assigned_to == assigned_to)
    s = (search or "").strip()
    if s:
        pattern = f"%{s}%"
        conds.append(
            or_(
                Asset.name.ilike(pattern),
                Asset.serial_number.ilike(pattern),
                _full_name(AssignedTo).ilike(pattern),
                _full_name(AssignedBy).ilike(pattern),
            )
        )
    if status == AssignmentStatus.active:
        conds.append(AssetAssignment.date_returned.is_(None))
    elif status == AssignmentStatus.returned:
        conds.append(AssetAssignment.date_returned.is_not(None))
    return conds


SORT_COLUMNS = {
    AssignmentSort.date_issued: AssetAssignment.date_issued,
    AssignmentSort.asset_name: Asset.name,
    AssignmentSort.assigned_to: _full_name(AssignedTo),
    AssignmentSort.assigned_by: _full_name(AssignedBy),
}


class AssignmentService:
    @staticmethod
    def create_assignment(session: Session, data: AssignmentCreate) -> ServiceResult:
        """Issue an asset to a user.

        The target location is the explicit override, else the assignee's default
        location, else wherever the asset already is. Unique assets follow their
        assignee (keeper, location, ``in_use``); bulk assets only lose stock.
        A movement row is written only when the asset actually changes location.
        Any failure leaves the database untouched.
        """
        if not data.assigned_by:
            return ServiceResult.fail("Assigning user is required")
        if data.quantity < 1:
            return ServiceResult.fail("Quantity must be at least 1")

        try:
            asset = lock_asset(session, data.asset_id)
            if not asset:
                return _rollback_fail(session, "Asset not found", "NOT_FOUND")

            user = session.get(User, data.assigned_to)
            if not user:
                return _rollback_fail(session, "User not found", "NOT_FOUND")
            if data.assigned_by != data.assigned_to and not session.get(User, data.assigned_by):
                return _rollback_fail(session, "Assigning user not found", "NOT_FOUND")

            if data.location_id is not None:
                if not session.get(Location, data.location_id):
                    return _rollback_fail(session, "Location not found", "NOT_FOUND")
                target_location_id = data.location_id
            else:
                target_location_id = user.default_location_id or asset.location_id
            if target_location_id is None:
                return _rollback_fail(session, "Could not determine a location for this assignment")

            if asset.is_bulk:
                if asset.bulk_status == BulkStatus.discontinued:
                    return _rollback_fail(session, "Discontinued stock cannot be assigned")
                stock = asset.current_stock_level or 0
                if stock < data.quantity:
                    return _rollback_fail(session, "Insufficient stock available", "INSUFFICIENT_STOCK")
            else:
                if data.quantity != 1:
                    return _rollback_fail(session, "Unique assets can only be assigned with quantity 1")
                if asset.individual_status == IndividualStatus.disposed:
                    return _rollback_fail(session, "Disposed assets cannot be assigned")
                if _open_assignment(session, asset.asset_id):
                    return _rollback_fail(session, ALREADY_ASSIGNED, "ALREADY_ASSIGNED")

            now = utcnow()
            assignment = AssetAssignment(
                asset_id=asset.asset_id,
                assigned_to=data.assigned_to,
                assigned_by=data.assigned_by,
                date_issued=now,
                date_due=_naive_utc(data.date_due),
                condition_issued=data.condition_issued,
                quantity=data.quantity,
                notes=data.notes,
                open_asset_id=None if asset.is_bulk else asset.asset_id,
            )
            session.add(assignment)

            from_location_id = asset.location_id
            if asset.is_bulk:
                new_stock = stock - data.quantity
                asset.current_stock_level = new_stock
                asset.bulk_status = bulk_status_for(new_stock, asset.bulk_status)
                note = build_note("assign", data.quantity, stock, new_stock, data.notes)
            else:
                asset.keeper_payroll_number = data.assigned_to
                asset.location_id = target_location_id
                asset.individual_status = IndividualStatus.in_use
                note = data.notes or f"Assigned to {user.full_name}"
            asset.updated_at = now
            session.add(asset)

            if target_location_id != from_location_id:
                record_movement(
                    session,
                    asset_id=asset.asset_id,
                    moved_by=data.assigned_by,
                    movement_type=MovementType.assignment,
                    quantity=data.quantity,
                    from_location_id=from_location_id,
                    to_location_id=target_location_id,
                    notes=note,
                    timestamp=now,
                )

            session.flush()
            session.commit()
        except IntegrityError:
            session.rollback()
            return ServiceResult.fail(ALREADY_ASSIGNED, "ALREADY_ASSIGNED")
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to assign asset %s to %s", data.asset_id, data.assigned_to)
            return ServiceResult.fail("Failed to create assignment", "INTERNAL_ERROR")

        logger.info(
            "asset %s issued to %s by %s (qty %s)",
            data.asset_id, data.assigned_to, data.assigned_by, data.quantity,
        )
        return ServiceResult.ok(
            "Asset assigned successfully",
            {"assignment_id": assignment.assignment_id},
        )

    @staticmethod
    def return_assignment(
        session: Session, assignment_id: int, data: AssignmentReturn, returned_by: str
    ) -> ServiceResult:
        try:
            assignment, asset = _locked_assignment(session, assignment_id)
            if not assignment:
                return _rollback_fail(session, "Assignment not found", "NOT_FOUND")
            if not assignment.is_active:
                return _rollback_fail(session, "Assignment has already been returned", "ALREADY_RETURNED")
            now = utcnow()

            if asset.is_bulk:
                outstanding = assignment.quantity_outstanding
                qty = data.quantity_returned or outstanding
                if qty > outstanding:
                    return _rollback_fail(
                        session, f"Cannot return more than the outstanding quantity ({outstanding})"
                    )
                old_stock = asset.current_stock_level or 0
                new_stock = old_stock + qty
                asset.current_stock_level = new_stock
                asset.bulk_status = bulk_status_for(new_stock, asset.bulk_status)
                assignment.quantity_returned += qty
                assignment.condition_returned = data.condition_returned
                if assignment.quantity_returned >= assignment.quantity:
                    assignment.date_returned = now
                from_location_id = None
                to_location_id = asset.location_id
                note = build_note("return", qty, old_stock, new_stock, data.notes)
            else:
                if data.quantity_returned not in (None, 1):
                    return _rollback_fail(session, "Unique assets are returned with quantity 1")
                qty = 1
                from_location_id = asset.location_id
                to_location_id = data.to_location_id or from_location_id
                if to_location_id != from_location_id and not session.get(Location, to_location_id):
                    return _rollback_fail(session, "Location not found", "NOT_FOUND")
                asset.location_id = to_location_id
                asset.individual_status = IndividualStatus.available
                asset.keeper_payroll_number = returned_by
                assignment.quantity_returned = 1
                assignment.condition_returned = data.condition_returned
                assignment.date_returned = now
                assignment.open_asset_id = None
                note = data.notes or f"Returned in {data.condition_returned.value} condition"

            asset.updated_at = now
            session.add(asset)
            session.add(assignment)
            record_movement(
                session,
                asset_id=asset.asset_id,
                moved_by=returned_by,
                movement_type=MovementType.return_,
                quantity=qty,
                from_location_id=from_location_id,
                to_location_id=to_location_id,
                notes=note,
                timestamp=now,
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to return assignment %s", assignment_id)
            return ServiceResult.fail("Failed to return assignment", "INTERNAL_ERROR")

        session.refresh(assignment)
        logger.info("assignment %s returned by %s (qty %s)", assignment_id, returned_by, qty)
        return ServiceResult.ok("Asset returned successfully", assignment)

    @staticmethod
    def move_assigned_asset(
        session: Session, asset_id: int, to_location_id: int, moved_by: str, notes: Optional[str] = None
    ) -> ServiceResult:
        """Relocate a unique asset while it stays with its assignee."""
        try:
            asset = lock_asset(session, asset_id)
            if not asset:
                return _rollback_fail(session, "Asset not found", "NOT_FOUND")
            if asset.is_bulk:
                return _rollback_fail(session, "Only unique assets can be moved while assigned")
            if not _open_assignment(session, asset_id):
                return _rollback_fail(session, "Asset is not currently assigned", "NOT_ASSIGNED")
            if not session.get(Location, to_location_id):
                return _rollback_fail(session, "Destination location not found", "NOT_FOUND")
            if asset.location_id == to_location_id:
                return _rollback_fail(session, "Asset is already at this location", "SAME_LOCATION")

            from_location_id = asset.location_id
            asset.location_id = to_location_id
            asset.updated_at = utcnow()
            session.add(asset)
            movement = record_movement(
                session,
                asset_id=asset_id,
                moved_by=moved_by,
                movement_type=MovementType.transfer,
                from_location_id=from_location_id,
                to_location_id=to_location_id,
                notes=notes or "Moved while assigned",
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to move assigned asset %s", asset_id)
            return ServiceResult.fail("Failed to move asset", "INTERNAL_ERROR")

        session.refresh(movement)
        logger.info("assigned asset %s moved %s -> %s by %s", asset_id, from_location_id, to_location_id, moved_by)
        return ServiceResult.ok("Asset moved successfully", movement)

    @staticmethod
    def list_assignments(
        session: Session,
        kind: Optional[AssignmentKind] = None,
        assigned_by: Optional[str] = None,
        assigned_to: Optional[str] = None,
        search: Optional[str] = None,
        status: Optional[AssignmentStatus] = None,
        sort_by: AssignmentSort = AssignmentSort.date_issued,
        sort_order: SortOrder = SortOrder.desc,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        page, limit, offset = page_window(page, limit)
        conds = _list_filters(kind, assigned_by, assigned_to, search, status)

        count_stmt = _joined(select(func.count(AssetAssignment.assignment_id)).select_from(AssetAssignment))
        stmt = _joined(select(AssetAssignment, Asset, AssignedTo, AssignedBy, Location))
        if conds:
            count_stmt = count_stmt.where(*conds)
            stmt = stmt.where(*conds)

        column = SORT_COLUMNS[sort_by]
        tie = AssetAssignment.assignment_id
        if sort_order == SortOrder.desc:
            stmt = stmt.order_by(column.desc(), tie.desc())
        else:
            stmt = stmt.order_by(column.asc(), tie.asc())

        total = session.exec(count_stmt).one()
        rows = session.exec(stmt.offset(offset).limit(limit)).all()
        return page_payload([_detail(*row) for row in rows], total, page, limit)

    @staticmethod
    def get_assignment(session: Session, assignment_id: int) -> ServiceResult:
        rows = assignment_details(session, AssetAssignment.assignment_id == assignment_id)
        if not rows:
            return ServiceResult.fail("Assignment not found", "NOT_FOUND")
        return ServiceResult.ok("", rows[0])

    @staticmethod
    def update_assignment_notes(session: Session, assignment_id: int, notes: str) -> ServiceResult:
        assignment = session.get(AssetAssignment, assignment_id)
        if not assignment:
            return ServiceResult.fail("Assignment not found", "NOT_FOUND")

        assignment.notes = notes
        try:
            session.add(assignment)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to update notes on assignment %s", assignment_id)
            return ServiceResult.fail("Failed to update assignment", "INTERNAL_ERROR")
        return AssignmentService.get_assignment(session, assignment_id)

    @staticmethod
    def get_available_assets(session: Session, kind: Optional[AssignmentKind] = None) -> list[dict]:
        """Unique assets that are free to issue, and bulk assets with stock on hand."""
        unique_cond = (Asset.is_bulk == False) & (  # noqa: E712
            Asset.individual_status == IndividualStatus.available
        )
        bulk_cond = (
            (Asset.is_bulk == True)  # noqa: E712
            & (Asset.current_stock_level > 0)
            & (Asset.bulk_status != BulkStatus.discontinued)
        )
        if kind == AssignmentKind.unique:
            cond = unique_cond
        elif kind == AssignmentKind.bulk:
            cond = bulk_cond
        else:
            cond = or_(unique_cond, bulk_cond)

        rows = session.exec(
            select(Asset, Location)
            .join(Location, Asset.location_id == Location.location_id)
            .where(cond)
            .order_by(Asset.name.asc(), Asset.asset_id.asc())
        ).all()
        return [
            {
                "asset_id": asset.asset_id,
                "name": asset.name,
                "serial_number": asset.serial_number,
                "is_bulk": asset.is_bulk,
                "current_stock_level": asset.current_stock_level,
                "individual_status": asset.individual_status,
                "location_name": location.display_name,
            }
            for asset, location in rows
        ]

    @staticmethod
    def delete_assignment(
        session: Session, assignment_id: int, deleted_by: str, reason: Optional[str] = None
    ) -> ServiceResult:
        """Remove an assignment; an active one is reversed first.

        Bulk stock gets the outstanding quantity back. A unique asset becomes
        available again, goes back to the location it was issued from and is
        kept by whoever deletes the assignment, the same custody rule as a return.
        """
        try:
            assignment, asset = _locked_assignment(session, assignment_id)
            if not assignment:
                return _rollback_fail(session, "Assignment not found", "NOT_FOUND")

            if assignment.is_active:
                now = utcnow()
                from_location_id = None
                if asset.is_bulk:
                    outstanding = assignment.quantity_outstanding
                    old_stock = asset.current_stock_level or 0
                    new_stock = old_stock + outstanding
                    asset.current_stock_level = new_stock
                    asset.bulk_status = bulk_status_for(new_stock, asset.bulk_status)
                    note = build_note("return", outstanding, old_stock, new_stock, reason)
                else:
                    outstanding = 1
                    from_location_id = asset.location_id
                    asset.location_id = _issued_from(session, assignment) or asset.location_id
                    asset.keeper_payroll_number = deleted_by
                    asset.individual_status = IndividualStatus.available
                    note = reason or ""
                asset.updated_at = now
                session.add(asset)
                record_movement(
                    session,
                    asset_id=asset.asset_id,
                    moved_by=deleted_by,
                    movement_type=MovementType.return_,
                    quantity=outstanding,
                    from_location_id=from_location_id,
                    to_location_id=asset.location_id,
                    notes=f"Assignment {assignment_id} deleted. {note}".strip(),
                    timestamp=now,
                )

            session.delete(assignment)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to delete assignment %s", assignment_id)
            return ServiceResult.fail("Failed to delete assignment", "INTERNAL_ERROR")

        logger.info("assignment %s deleted by %s", assignment_id, deleted_by)
        return ServiceResult.ok("Assignment deleted successfully")

    @staticmethod
    def bulk_delete_assignments(
        session: Session, assignment_ids: list[int], deleted_by: str, reason: Optional[str] = None
    ) -> dict:
        # each id commits on its own so one failure doesn't undo the rest
        results = []
        for assignment_id in dict.fromkeys(assignment_ids):
            result = AssignmentService.delete_assignment(session, assignment_id, deleted_by, reason)
            results.append(
                {"assignment_id": assignment_id, "success": result.success, "message": result.message}
            )

        deleted = sum(1 for r in results if r["success"])
        return {
            "success": deleted == len(results),
            "results": results,
            "summary": {"requested": len(results), "deleted": deleted, "failed": len(results) - deleted},
            "deleted_by": deleted_by,
            "reason": reason,
        }
