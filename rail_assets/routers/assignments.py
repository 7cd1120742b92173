from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_keeper, require_user
from rail_assets.error import raise_for_result
from rail_assets.models import User
from rail_assets.schemas import (
    AssignmentCreate,
    AssignmentCreated,
    AssignmentDetail,
    AssignmentKind,
    AssignmentNotesUpdate,
    AssignmentReturn,
    AssignmentSort,
    AssignmentStatus,
    AvailableAsset,
    BulkDeleteRequest,
    BulkDeleteResponse,
    MovementRead,
    MoveAssignedRequest,
    Page,
    SortOrder,
)
from rail_assets.services.assignments import AssignmentService

router = APIRouter(prefix="/assignments", tags=["assignments"])


def _create(session: Session, data: AssignmentCreate, user: User) -> dict:
    if not data.assigned_by:
        data = data.model_copy(update={"assigned_by": user.payroll_number})
    result = AssignmentService.create_assignment(session, data)
    raise_for_result(result)
    return {"assignment_id": result.data["assignment_id"], "message": result.message}


@router.get("", response_model=Page[AssignmentDetail])
def list_assignments(
    kind: Optional[AssignmentKind] = None,
    assigned_by: Optional[str] = None,
    assigned_to: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    status: Optional[AssignmentStatus] = None,
    sort_by: AssignmentSort = AssignmentSort.date_issued,
    sort_order: SortOrder = SortOrder.desc,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return AssignmentService.list_assignments(
        session,
        kind=kind,
        assigned_by=assigned_by,
        assigned_to=assigned_to,
        search=search,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.post("", response_model=AssignmentCreated, status_code=201)
def create_assignment(
    data: AssignmentCreate,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    return _create(session, data, user)


@router.post("/unique", response_model=AssignmentCreated, status_code=201)
def create_unique_assignment(
    data: AssignmentCreate,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    return _create(session, data.model_copy(update={"quantity": 1}), user)


@router.get("/available-assets", response_model=list[AvailableAsset])
def available_assets(
    kind: Optional[AssignmentKind] = None,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return AssignmentService.get_available_assets(session, kind)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_assignments(
    body: BulkDeleteRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    return AssignmentService.bulk_delete_assignments(
        session, body.assignment_ids, user.payroll_number, body.reason
    )


@router.get("/{assignment_id}", response_model=AssignmentDetail)
def get_assignment(
    assignment_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    result = AssignmentService.get_assignment(session, assignment_id)
    raise_for_result(result)
    return result.data


@router.patch("/{assignment_id}", response_model=AssignmentDetail)
def update_assignment_notes(
    assignment_id: int,
    body: AssignmentNotesUpdate,
    session: Session = Depends(get_session),
    _user: User = Depends(require_keeper),
):
    result = AssignmentService.update_assignment_notes(session, assignment_id, body.notes)
    raise_for_result(result)
    return result.data


@router.delete("/{assignment_id}")
def delete_assignment(
    assignment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = AssignmentService.delete_assignment(session, assignment_id, user.payroll_number)
    raise_for_result(result)
    return {"ok": True, "message": result.message}


@router.post("/{assignment_id}/return", response_model=AssignmentDetail)
def return_assignment(
    assignment_id: int,
    body: AssignmentReturn,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = AssignmentService.return_assignment(session, assignment_id, body, user.payroll_number)
    raise_for_result(result)
    detail = AssignmentService.get_assignment(session, assignment_id)
    raise_for_result(detail)
    return detail.data


# the path segment here is an asset id, not an assignment id
@router.patch("/{asset_id}/move", response_model=MovementRead)
def move_assigned_asset(
    asset_id: int,
    body: MoveAssignedRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_keeper),
):
    result = AssignmentService.move_assigned_asset(
        session, asset_id, body.to_location_id, user.payroll_number, body.notes
    )
    raise_for_result(result)
    return result.data
