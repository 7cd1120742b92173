from rail_assets.schemas import AssignmentCreate, BulkAssetCreate, UniqueAssetCreate
from rail_assets.services.assignments import AssignmentService
from rail_assets.services.bulk_assets import BulkAssetService
from rail_assets.services.dashboard import DashboardService
from rail_assets.services.unique_assets import UniqueAssetService


def _stock(session, seeded):
    for serial in ("LT-1", "LT-2"):
        UniqueAssetService.create_unique_asset(
            session, UniqueAssetCreate(name="Laptop", serial_number=serial, location_id=seeded.hq), "K001"
        )
    for name, qty, threshold in (("Pens", 100, 20), ("Gloves", 5, 10)):
        BulkAssetService.create_bulk_asset(
            session,
            BulkAssetCreate(
                name=name, location_id=seeded.hq, keeper_payroll_number="K001", quantity=qty, minimum_threshold=threshold
            ),
        )


def test_empty_dashboard(session, seeded):
    assert DashboardService.get_unique_asset_stats(session) == {
        "total_unique": 0,
        "assigned_unique": 0,
        "available_unique": 0,
    }
    assert DashboardService.get_bulk_asset_stats(session) == {"total_bulk": 0, "low_stock_count": 0}
    assert DashboardService.get_recent_movements(session) == []


def test_stats(session, seeded):
    _stock(session, seeded)
    first = UniqueAssetService.list_unique_assets(session)["items"][0]
    AssignmentService.create_assignment(
        session, AssignmentCreate(asset_id=first.asset_id, assigned_to="V001", assigned_by="K001")
    )

    assert DashboardService.get_unique_asset_stats(session) == {
        "total_unique": 2,
        "assigned_unique": 1,
        "available_unique": 1,
    }
    # units on hand, not rows
    assert DashboardService.get_bulk_asset_stats(session) == {"total_bulk": 105, "low_stock_count": 1}

    keepers = DashboardService.get_top_keepers(session)
    assert [(k["payroll_number"], k["asset_count"]) for k in keepers] == [("K001", 2), ("V001", 1), ("A001", 0)]

    recent = DashboardService.get_recent_movements(session, limit=2)
    assert len(recent) == 2
    assert recent[0]["movement_type"].value == "assignment"


def test_dashboard_endpoints(client, viewer_headers, session, seeded):
    _stock(session, seeded)

    r = client.get("/dashboard/unique", headers=viewer_headers)
    assert r.status_code == 200
    assert r.json()["available_unique"] == 2

    r = client.get("/dashboard/bulk", headers=viewer_headers)
    assert r.json() == {"total_bulk": 105, "low_stock_count": 1}

    r = client.get("/dashboard/activity?keepers=1&movements=3", headers=viewer_headers)
    data = r.json()
    assert data["top_keepers"][0]["first_name"] == "Kim"
    assert len(data["recent_movements"]) == 3

    assert client.get("/dashboard/activity?keepers=0", headers=viewer_headers).status_code == 422
