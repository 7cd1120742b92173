import logging

from fastapi import HTTPException
from sqlalchemy import event
from sqlmodel import SQLModel, Session, create_engine

from rail_assets.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(url: str, **kwargs):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connect_args, **kwargs)

    if url.startswith("sqlite"):
        # sqlite leaves foreign keys off unless asked per connection
        @event.listens_for(engine, "connect")
        def _enable_fk(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(get_settings().database_url)


def create_db_and_tables() -> None:
    # make sure every table is registered on the metadata
    import rail_assets.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    session = Session(engine)
    try:
        yield session
    except HTTPException:
        # business / auth errors: nothing was written that needs undoing
        raise
    except Exception:
        session.rollback()
        logger.exception("rolled back session after unexpected error")
        raise
    finally:
        session.close()
