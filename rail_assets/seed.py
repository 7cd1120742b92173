import logging

from sqlmodel import Session

from rail_assets.config import get_settings
from rail_assets.db import create_db_and_tables, engine
from rail_assets.models import User, UserRole
from rail_assets.security import hash_password

logger = logging.getLogger(__name__)


def seed_admin(session: Session, payroll_number: str, password: str) -> User:
    """Create the first administrator; an existing account is left untouched."""
    existing = session.get(User, payroll_number)
    if existing:
        logger.info("admin %s already exists, nothing to do", payroll_number)
        return existing

    admin = User(
        payroll_number=payroll_number,
        first_name="Super",
        last_name="Admin",
        role=UserRole.admin,
        password_hash=hash_password(password),
    )
    session.add(admin)
    session.commit()
    session.refresh(admin)
    logger.info("admin %s created", payroll_number)
    return admin


if __name__ == "__main__":
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    create_db_and_tables()
    with Session(engine) as session:
        seed_admin(session, settings.admin_payroll_number, settings.admin_password)
