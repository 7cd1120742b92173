from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_admin, require_user
from rail_assets.error import abort, raise_for_result
from rail_assets.models import User, UserRole
from rail_assets.schemas import Page, UserCreate, UserOption, UserRead, UserUpdate
from rail_assets.services.users import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=Page[UserRead])
def list_users(
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[UserRole] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return UserService.list_users(session, search, role, page, limit)


@router.get("/options", response_model=list[UserOption])
def list_user_options(
    role: Optional[UserRole] = None,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return UserService.list_user_options(session, role)


@router.post("", response_model=UserRead, status_code=201)
def create_user(
    data: UserCreate,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    result = UserService.create_user(session, data)
    raise_for_result(result)
    return result.data


@router.get("/{payroll_number}", response_model=UserRead)
def get_user(
    payroll_number: str,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    user = UserService.get_user(session, payroll_number)
    if not user:
        abort(404, "NOT_FOUND", "User not found")
    return user


@router.patch("/{payroll_number}", response_model=UserRead)
def update_user(
    payroll_number: str,
    data: UserUpdate,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    result = UserService.update_user(session, payroll_number, data)
    raise_for_result(result)
    return result.data


@router.delete("/{payroll_number}")
def delete_user(
    payroll_number: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    if payroll_number == admin.payroll_number:
        abort(400, "BAD_REQUEST", "You cannot delete your own account")
    result = UserService.delete_user(session, payroll_number)
    raise_for_result(result)
    return {"ok": True, "message": result.message}
