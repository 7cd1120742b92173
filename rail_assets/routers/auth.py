from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_admin, require_user
from rail_assets.error import abort, raise_for_result
from rail_assets.models import User
from rail_assets.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    ResetPasswordResponse,
    SignupRequest,
    Token,
    UserRead,
)
from rail_assets.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


async def login_credentials(request: Request) -> LoginRequest:
    """Accept either a JSON body or the OAuth2 password form (Swagger's Authorize button)."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            abort(400, "BAD_REQUEST", "Request body is not valid JSON")
    else:
        form = await request.form()
        payload = {
            "payroll_number": form.get("payroll_number") or form.get("username"),
            "password": form.get("password"),
        }

    try:
        return LoginRequest.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


@router.post("/signup", response_model=UserRead, status_code=201)
def signup(
    data: SignupRequest,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    result = AuthService.signup(session, data)
    raise_for_result(result)
    return result.data


@router.post("/login", response_model=Token)
def login(
    credentials: LoginRequest = Depends(login_credentials),
    session: Session = Depends(get_session),
):
    result = AuthService.login(session, credentials.payroll_number, credentials.password)
    raise_for_result(result)
    return result.data


@router.post("/reset-password", response_model=ResetPasswordResponse)
def reset_password(
    data: ResetPasswordRequest,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    result = AuthService.reset_user_password(session, data.payroll_number)
    raise_for_result(result)
    return {**result.data, "message": result.message}


@router.post("/change-password", response_model=Token)
def change_password(
    data: ChangePasswordRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    result = AuthService.change_password(session, user.payroll_number, data.old_password, data.new_password)
    raise_for_result(result)
    return result.data


@router.get("/profile", response_model=UserRead)
def profile(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    result = AuthService.get_user_profile(session, user.payroll_number)
    raise_for_result(result)
    return result.data
