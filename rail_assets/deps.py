from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.error import _auth_401, _forbidden_403
from rail_assets.models import User, UserRole
from rail_assets.security import decode_token

# auto_error=False so a missing token gets our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def require_user(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    if not token:
        raise _auth_401("NOT_AUTHENTICATED", "Not authenticated, please log in")

    try:
        claims = decode_token(token)
    except (JWTError, ValueError):
        raise _auth_401("INVALID_TOKEN", "Invalid or expired token, please log in again")

    # token is valid but the account may have been removed since
    user = session.get(User, claims.payroll_number)
    if not user:
        raise _auth_401("USER_NOT_FOUND", "User not found or has been deleted")

    return user


def require_roles(*roles: UserRole):
    def checker(user: User = Depends(require_user)) -> User:
        if user.role not in roles:
            raise _forbidden_403("You do not have permission to perform this action")
        return user

    return checker


require_keeper = require_roles(UserRole.admin, UserRole.keeper)
require_admin = require_roles(UserRole.admin)
