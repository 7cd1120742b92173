from rail_assets.models import Location, User
from rail_assets.schemas import UserCreate
from rail_assets.security import verify_password
from rail_assets.services.locations import LocationService
from rail_assets.services.users import UserService


def test_location_crud(client, keeper_headers):
    r = client.post(
        "/locations",
        json={"region_name": "Kisumu", "department_name": "Signals", "notes": "lakeside"},
        headers=keeper_headers,
    )
    assert r.status_code == 201
    loc_id = r.json()["location_id"]

    r = client.patch(f"/locations/{loc_id}", json={"notes": "moved office"}, headers=keeper_headers)
    assert r.status_code == 200
    assert r.json()["notes"] == "moved office"
    assert r.json()["region_name"] == "Kisumu"

    r = client.get("/locations?search=signal", headers=keeper_headers)
    assert r.status_code == 200
    assert [loc["location_id"] for loc in r.json()["items"]] == [loc_id]

    r = client.delete(f"/locations/{loc_id}", headers=keeper_headers)
    assert r.status_code == 200
    assert client.get(f"/locations/{loc_id}", headers=keeper_headers).status_code == 404


def test_location_list_is_ordered_and_paged(client, viewer_headers):
    r = client.get("/locations?limit=1&page=2", headers=viewer_headers)
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    assert data["total_pages"] == 2
    # Mombasa sorts before Nairobi
    assert data["items"][0]["region_name"] == "Nairobi"


def test_viewer_cannot_write_locations(client, viewer_headers):
    r = client.post("/locations", json={"region_name": "X", "department_name": "Y"}, headers=viewer_headers)
    assert r.status_code == 403


def test_delete_referenced_location_conflicts(client, keeper_headers, seeded):
    r = client.delete(f"/locations/{seeded.hq}", headers=keeper_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "CONFLICT"


def test_find_or_create_is_case_insensitive(session, seeded):
    found = LocationService.find_or_create(session, "ict", "NAIROBI")
    assert found.location_id == seeded.hq

    created = LocationService.find_or_create(session, "Track", "Nakuru")
    session.commit()
    assert created.location_id not in (seeded.hq, seeded.depot)
    assert LocationService.count(session) == 3


def test_create_user_defaults(session, seeded):
    result = UserService.create_user(
        session,
        UserCreate(
            payroll_number="P200",
            first_name="Ann",
            last_name="Otieno",
            department_name="Permanent Way",
            region_name="Eldoret",
        ),
    )
    assert result.success
    user = session.get(User, "P200")
    assert user.must_change_password is True
    assert verify_password("Password10", user.password_hash)

    location = session.get(Location, user.default_location_id)
    assert (location.region_name, location.department_name) == ("Eldoret", "Permanent Way")


def test_create_user_duplicate_and_bad_location(session, seeded):
    dup = UserService.create_user(session, UserCreate(payroll_number="K001", first_name="A", last_name="B"))
    assert not dup.success
    assert dup.code == "ALREADY_EXISTS"

    missing = UserService.create_user(
        session, UserCreate(payroll_number="P300", first_name="A", last_name="B", default_location_id=999)
    )
    assert missing.code == "NOT_FOUND"
    assert session.get(User, "P300") is None


def test_user_endpoints(client, admin_headers, keeper_headers, seeded):
    body = {"payroll_number": "P400", "first_name": "Joe", "last_name": "Mwangi", "role": "keeper"}
    assert client.post("/users", json=body, headers=keeper_headers).status_code == 403

    r = client.post("/users", json=body, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["must_change_password"] is True

    r = client.patch(
        "/users/P400", json={"last_name": "Kamau", "default_location_id": seeded.depot}, headers=admin_headers
    )
    assert r.status_code == 200
    assert r.json()["last_name"] == "Kamau"
    assert r.json()["default_location_id"] == seeded.depot

    # passwords are not editable here
    r = client.patch("/users/P400", json={"password": "x"}, headers=admin_headers)
    assert r.status_code == 422

    r = client.get("/users?search=kamau", headers=keeper_headers)
    assert [u["payroll_number"] for u in r.json()["items"]] == ["P400"]

    r = client.get("/users/options?role=keeper", headers=keeper_headers)
    names = {o["payroll_number"]: o["name"] for o in r.json()}
    assert names == {"K001": "Kim Keeper", "P400": "Joe Kamau"}

    assert client.delete("/users/P400", headers=admin_headers).status_code == 200
    assert client.get("/users/P400", headers=admin_headers).status_code == 404


def test_admin_cannot_delete_self(client, admin_headers):
    r = client.delete("/users/A001", headers=admin_headers)
    assert r.status_code == 400


def test_delete_location_with_movement_history_conflicts(client, keeper_headers, seeded):
    loc_id = client.post(
        "/locations", json={"region_name": "Voi", "department_name": "Stores"}, headers=keeper_headers
    ).json()["location_id"]
    asset_id = client.post(
        "/unique-assets",
        json={"name": "Radio", "serial_number": "RD-9", "location_id": loc_id},
        headers=keeper_headers,
    ).json()["asset_id"]
    client.post(f"/unique-assets/{asset_id}/transfer", json={"to_location_id": seeded.hq}, headers=keeper_headers)

    r = client.delete(f"/locations/{loc_id}", headers=keeper_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "CONFLICT"
    assert client.get(f"/locations/{loc_id}", headers=keeper_headers).status_code == 200


def test_update_location_rejects_blank_names(client, keeper_headers, seeded):
    for body in ({"region_name": None}, {"department_name": "  "}, {"region_name": "Thika", "department_name": None}):
        r = client.patch(f"/locations/{seeded.depot}", json=body, headers=keeper_headers)
        assert r.status_code == 400

    r = client.get(f"/locations/{seeded.depot}", headers=keeper_headers)
    assert (r.json()["region_name"], r.json()["department_name"]) == ("Mombasa", "Workshop")

    r = client.patch(f"/locations/{seeded.depot}", json={"notes": None}, headers=keeper_headers)
    assert r.status_code == 200
    assert r.json()["notes"] is None
