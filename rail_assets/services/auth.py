import logging

from jose import JWTError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from rail_assets.models import User, utcnow
from rail_assets.schemas import ServiceResult, SignupRequest, UserRead
from rail_assets.security import (
    create_access_token,
    decode_token,
    generate_temporary_password,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)


class AuthService:
    @staticmethod
    def signup(session: Session, data: SignupRequest) -> ServiceResult:
        payroll = data.payroll_number.strip()
        # friendly message first; the primary key still guards against a race
        if session.get(User, payroll):
            return ServiceResult.fail("User with this payroll number already exists", "ALREADY_EXISTS")

        user = User(
            payroll_number=payroll,
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            role=data.role,
            password_hash=hash_password(data.password),
            must_change_password=False,
        )
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            return ServiceResult.fail("User with this payroll number already exists", "ALREADY_EXISTS")
        except SQLAlchemyError:
            session.rollback()
            logger.exception("signup failed for %s", payroll)
            return ServiceResult.fail("Failed to create user", "INTERNAL_ERROR")

        session.refresh(user)
        logger.info("user %s signed up with role %s", user.payroll_number, user.role.value)
        return ServiceResult.ok("User created successfully", user)

    @staticmethod
    def login(session: Session, payroll_number: str, password: str) -> ServiceResult:
        user = session.get(User, payroll_number.strip())
        # same message for both cases so payroll numbers can't be enumerated
        if not user or not verify_password(password, user.password_hash):
            return ServiceResult.fail("Invalid credentials", "INVALID_CREDENTIALS")

        return ServiceResult.ok(
            "Login successful",
            {
                "access_token": create_access_token(user),
                "token_type": "bearer",
                "must_change_password": user.must_change_password,
            },
        )

    @staticmethod
    def reset_user_password(session: Session, payroll_number: str) -> ServiceResult:
        user = session.get(User, payroll_number)
        if not user:
            return ServiceResult.fail("User not found", "NOT_FOUND")

        temporary = generate_temporary_password()
        new_hash = hash_password(temporary)
        while new_hash == user.password_hash:
            new_hash = hash_password(temporary)

        user.password_hash = new_hash
        user.must_change_password = True
        user.updated_at = utcnow()
        try:
            session.add(user)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("password reset failed for %s", payroll_number)
            return ServiceResult.fail("Failed to reset password", "INTERNAL_ERROR")

        logger.info("password reset for %s", payroll_number)
        return ServiceResult.ok(
            "Password reset successfully. User must change password on next login.",
            {"payroll_number": user.payroll_number, "temporary_password": temporary},
        )

    @staticmethod
    def change_password(
        session: Session, payroll_number: str, old_password: str, new_password: str
    ) -> ServiceResult:
        user = session.get(User, payroll_number)
        if not user:
            return ServiceResult.fail("User not found", "NOT_FOUND")
        if not verify_password(old_password, user.password_hash):
            return ServiceResult.fail("Current password is incorrect", "INVALID_PASSWORD")
        if old_password == new_password:
            return ServiceResult.fail("New password must be different from the current password")

        user.password_hash = hash_password(new_password)
        user.must_change_password = False
        user.updated_at = utcnow()
        try:
            session.add(user)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("password change failed for %s", payroll_number)
            return ServiceResult.fail("Failed to change password", "INTERNAL_ERROR")

        session.refresh(user)
        return ServiceResult.ok(
            "Password changed successfully",
            {
                "access_token": create_access_token(user),
                "token_type": "bearer",
                "must_change_password": False,
            },
        )

    @staticmethod
    def verify_token(token: str) -> ServiceResult:
        try:
            claims = decode_token(token)
        except (JWTError, ValueError):
            return ServiceResult.fail("Invalid or expired token", "INVALID_TOKEN")
        return ServiceResult.ok("Token is valid", claims)

    @staticmethod
    def get_user_profile(session: Session, payroll_number: str) -> ServiceResult:
        user = session.get(User, payroll_number)
        if not user:
            return ServiceResult.fail("User not found", "NOT_FOUND")
        return ServiceResult.ok("", UserRead.model_validate(user))
