import os
from types import SimpleNamespace

# settings are cached on first import, so the environment goes first
os.environ.setdefault("secret_key", "test_secret")
os.environ.setdefault("database_url", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from rail_assets.db import build_engine, get_session  # noqa: E402
from rail_assets.main import app  # noqa: E402
from rail_assets.models import Location, User, UserRole  # noqa: E402
from rail_assets.security import create_access_token, hash_password  # noqa: E402

ADMIN_PASSWORD = "adminpass"
KEEPER_PASSWORD = "keeperpass"
VIEWER_PASSWORD = "viewerpass"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def seeded(session):
    """Two locations and one user per role; returns their ids."""
    hq = Location(region_name="Nairobi", department_name="ICT")
    depot = Location(region_name="Mombasa", department_name="Workshop")
    session.add(hq)
    session.add(depot)
    session.flush()

    session.add(
        User(
            payroll_number="A001",
            first_name="Super",
            last_name="Admin",
            role=UserRole.admin,
            password_hash=hash_password(ADMIN_PASSWORD),
        )
    )
    session.add(
        User(
            payroll_number="K001",
            first_name="Kim",
            last_name="Keeper",
            role=UserRole.keeper,
            password_hash=hash_password(KEEPER_PASSWORD),
            default_location_id=hq.location_id,
        )
    )
    session.add(
        User(
            payroll_number="V001",
            first_name="Val",
            last_name="Viewer",
            role=UserRole.viewer,
            password_hash=hash_password(VIEWER_PASSWORD),
            default_location_id=depot.location_id,
        )
    )
    session.commit()
    return SimpleNamespace(hq=hq.location_id, depot=depot.location_id)


@pytest.fixture
def client(engine, seeded):
    def override_get_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def _headers(session: Session, payroll_number: str) -> dict:
    token = create_access_token(session.get(User, payroll_number))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(session, seeded):
    return _headers(session, "A001")


@pytest.fixture
def keeper_headers(session, seeded):
    return _headers(session, "K001")


@pytest.fixture
def viewer_headers(session, seeded):
    return _headers(session, "V001")
