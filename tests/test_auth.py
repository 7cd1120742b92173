from sqlmodel import Session

from rail_assets.models import User, UserRole
from rail_assets.security import decode_token, verify_password
from rail_assets.seed import seed_admin
from rail_assets.services.auth import AuthService

from conftest import ADMIN_PASSWORD, KEEPER_PASSWORD


def test_login_with_form_and_json(client):
    r = client.post("/auth/login", data={"username": "A001", "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    data = r.json()
    assert data["token_type"] == "bearer"
    assert data["must_change_password"] is False
    assert decode_token(data["access_token"]).payroll_number == "A001"

    r2 = client.post("/auth/login", json={"payroll_number": "K001", "password": KEEPER_PASSWORD})
    assert r2.status_code == 200
    claims = decode_token(r2.json()["access_token"])
    assert claims.role == "keeper"
    assert claims.first_name == "Kim"


def test_login_invalid_credentials(client):
    for body in (
        {"payroll_number": "nope", "password": "wrong"},
        {"payroll_number": "A001", "password": "wrong"},
    ):
        r = client.post("/auth/login", json=body)
        assert r.status_code == 401
        assert r.json() == {"detail": {"code": "INVALID_CREDENTIALS", "message": "Invalid credentials"}}


def test_login_missing_fields_is_validation_error(client):
    r = client.post("/auth/login", json={"payroll_number": "A001"})
    assert r.status_code == 422
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_signup_requires_admin(client, keeper_headers, admin_headers):
    body = {"payroll_number": "P100", "first_name": "New", "last_name": "Person", "password": "secret1"}

    r = client.post("/auth/signup", json=body)
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "NOT_AUTHENTICATED"

    r = client.post("/auth/signup", json=body, headers=keeper_headers)
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "FORBIDDEN"

    r = client.post("/auth/signup", json=body, headers=admin_headers)
    assert r.status_code == 201
    data = r.json()
    assert data["role"] == "viewer"
    assert data["must_change_password"] is False
    assert "password_hash" not in data

    r = client.post("/auth/signup", json=body, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "ALREADY_EXISTS"


def test_invalid_token_rejected(client):
    r = client.get("/auth/profile", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "INVALID_TOKEN"
    assert r.headers["WWW-Authenticate"] == "Bearer"


def test_profile(client, viewer_headers):
    r = client.get("/auth/profile", headers=viewer_headers)
    assert r.status_code == 200
    assert r.json()["payroll_number"] == "V001"
    assert r.json()["first_name"] == "Val"


def test_reset_then_change_password(client, admin_headers, session: Session):
    before = session.get(User, "K001").password_hash

    r = client.post("/auth/reset-password", json={"payroll_number": "K001"}, headers=admin_headers)
    assert r.status_code == 200
    temporary = r.json()["temporary_password"]
    assert len(temporary) == 8

    session.expire_all()
    user = session.get(User, "K001")
    assert user.password_hash != before
    assert user.must_change_password is True
    assert verify_password(temporary, user.password_hash)

    r = client.post("/auth/login", json={"payroll_number": "K001", "password": temporary})
    assert r.status_code == 200
    assert r.json()["must_change_password"] is True
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}

    r = client.post(
        "/auth/change-password",
        json={"old_password": temporary, "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["must_change_password"] is False

    r = client.post("/auth/login", json={"payroll_number": "K001", "password": "brand-new-pass"})
    assert r.status_code == 200
    assert r.json()["must_change_password"] is False


def test_reset_unknown_user(client, admin_headers):
    r = client.post("/auth/reset-password", json={"payroll_number": "X999"}, headers=admin_headers)
    assert r.status_code == 404


def test_change_password_wrong_old_keeps_hash(session, seeded):
    before = session.get(User, "K001").password_hash

    result = AuthService.change_password(session, "K001", "wrong-old", "another-pass")
    assert not result.success
    assert result.code == "INVALID_PASSWORD"

    session.expire_all()
    assert session.get(User, "K001").password_hash == before


def test_change_password_must_differ(session, seeded):
    result = AuthService.change_password(session, "K001", KEEPER_PASSWORD, KEEPER_PASSWORD)
    assert not result.success


def test_verify_token(session, seeded):
    token = AuthService.login(session, "A001", ADMIN_PASSWORD).data["access_token"]
    result = AuthService.verify_token(token)
    assert result.success
    assert result.data.payroll_number == "A001"

    assert not AuthService.verify_token(token + "x").success


def test_seed_admin_is_idempotent(session):
    admin = seed_admin(session, "A900", "first-pass")
    assert admin.role == UserRole.admin
    assert verify_password("first-pass", admin.password_hash)

    again = seed_admin(session, "A900", "other-pass")
    assert verify_password("first-pass", again.password_hash)
    assert AuthService.login(session, "A900", "first-pass").success
