import secrets
import string
from datetime import datetime, timezone
from uuid import uuid4

from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from rail_assets.config import get_settings
from rail_assets.models import User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


class TokenClaims(BaseModel):
    payroll_number: str
    role: str
    first_name: str
    last_name: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def generate_temporary_password(length: int | None = None) -> str:
    length = length or get_settings().temporary_password_length
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def create_access_token(user: User) -> str:
    settings = get_settings()

    now = datetime.now(timezone.utc)
    iat = int(now.timestamp())
    exp = iat + settings.access_token_expire_minutes * 60

    payload = {
        "sub": user.payroll_number,
        "payrollNumber": user.payroll_number,
        "role": user.role.value if hasattr(user.role, "value") else user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "iat": iat,
        "exp": exp,
        "jti": uuid4().hex,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenClaims:
    """Verify signature and expiry; raises JWTError or ValueError on a bad token."""
    settings = get_settings()
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])

    sub = payload.get("sub")
    if not sub:
        raise ValueError("Missing subject")

    if payload.get("type") not in (None, "access"):
        raise ValueError("Invalid token type")

    return TokenClaims(
        payroll_number=sub,
        role=payload.get("role", ""),
        first_name=payload.get("firstName", ""),
        last_name=payload.get("lastName", ""),
    )
