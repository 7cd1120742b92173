import io
from datetime import timedelta

import pytest
from openpyxl import load_workbook
from sqlmodel import select

from rail_assets.models import (
    Asset,
    AssetAssignment,
    AssetMovement,
    BulkStatus,
    IndividualStatus,
    RestockLog,
    utcnow,
)
from rail_assets.schemas import (
    AssignmentCreate,
    AssignmentReturn,
    BulkAssetCreate,
    BulkAssetUpdate,
    UniqueAssetCreate,
)
from rail_assets.services.assignments import AssignmentService
from rail_assets.services.bulk_assets import BulkAssetService
from rail_assets.services.tracking import TrackingService
from rail_assets.services.unique_assets import UniqueAssetService


@pytest.fixture
def inventory(session, seeded):
    def unique(name, serial, location_id, status=IndividualStatus.available):
        return UniqueAssetService.create_unique_asset(
            session,
            UniqueAssetCreate(name=name, serial_number=serial, location_id=location_id, individual_status=status),
            "K001",
        ).data.asset_id

    def bulk(name, quantity, threshold):
        return BulkAssetService.create_bulk_asset(
            session,
            BulkAssetCreate(
                name=name,
                location_id=seeded.hq,
                keeper_payroll_number="K001",
                quantity=quantity,
                minimum_threshold=threshold,
            ),
        ).data.asset_id

    laptop = unique("Laptop", "LT-1", seeded.hq)
    radio = unique("Radio", "RD-1", seeded.depot)
    unique("Old printer", "PR-1", seeded.hq, IndividualStatus.maintenance)

    AssignmentService.create_assignment(
        session, AssignmentCreate(asset_id=laptop, assigned_to="V001", assigned_by="K001")
    )

    pens = bulk("Pens", 100, 20)
    gloves = bulk("Gloves", 5, 10)
    forms = bulk("Forms", 0, 0)
    BulkAssetService.restock(session, pens, 50, "K001", "delivery")
    BulkAssetService.restock(session, pens, 10, "A001")

    return {"laptop": laptop, "radio": radio, "pens": pens, "gloves": gloves, "forms": forms, **vars(seeded)}


def test_tracking_summary(session, inventory):
    summary = TrackingService.get_tracking_summary(session)
    assert summary == {
        "total_unique_assets": 3,
        "available": 1,
        "in_use": 1,
        "maintenance": 1,
        "disposed": 0,
        "currently_assigned": 1,
    }


def test_tracked_unique_assets(session, inventory):
    page = TrackingService.get_tracked_unique_assets(session, assigned_to="V001")
    assert page["total"] == 1
    item = page["items"][0]
    assert item["serial_number"] == "LT-1"
    assert item["keeper"]["full_name"] == "Val Viewer"
    assert item["location"]["region_name"] == "Mombasa"
    assert item["current_assignment"]["assigned_to_name"] == "Val Viewer"
    assert item["latest_movement"]["movement_type"].value == "assignment"
    assert item["latest_movement"]["to_location"] == "Mombasa - Workshop"

    by_search = TrackingService.get_tracked_unique_assets(session, search="rd-")
    assert [i["name"] for i in by_search["items"]] == ["Radio"]
    assert by_search["items"][0]["current_assignment"] is None

    by_status = TrackingService.get_tracked_unique_assets(session, status=IndividualStatus.maintenance)
    assert [i["name"] for i in by_status["items"]] == ["Old printer"]


def test_unique_history(session, inventory):
    history = TrackingService.get_unique_asset_history(session, inventory["laptop"])
    assert [m["movement_type"].value for m in history["movements"]] == ["assignment", "transfer"]
    assert [a["assigned_to"] for a in history["assignments"]] == ["V001"]

    assert TrackingService.get_unique_asset_history(session, inventory["pens"]) is None
    assert TrackingService.get_unique_asset_details(session, inventory["pens"]) is None


def test_assets_needing_attention(session, inventory):
    assert TrackingService.get_assets_needing_attention(session) == []

    later = utcnow() + timedelta(days=31)
    overdue = TrackingService.get_assets_needing_attention(session, now=later)
    assert [o["asset_id"] for o in overdue] == [inventory["laptop"]]
    assert overdue[0]["days_since_issued"] >= 30
    assert overdue[0]["location_name"] == "Mombasa - Workshop"

    assignment_id = overdue[0]["assignment_id"]
    AssignmentService.return_assignment(session, assignment_id, AssignmentReturn(), "K001")
    assert TrackingService.get_assets_needing_attention(session, now=later) == []


def test_tracked_bulk_assets_and_summary(session, inventory):
    page = TrackingService.get_tracked_bulk_assets(session)
    assert [i["name"] for i in page["items"]] == ["Forms", "Gloves", "Pens"]
    assert page["summary"] == {
        "total_assets": 3,
        "low_stock_assets": 2,
        "active_assets": 2,
        "out_of_stock_assets": 1,
        "discontinued_assets": 0,
    }

    pens = next(i for i in page["items"] if i["name"] == "Pens")
    assert pens["current_stock_level"] == 160
    metrics = pens["stock_metrics"]
    assert metrics["is_low_stock"] is False
    assert metrics["stock_percentage"] == 800
    assert metrics["total_restock_events"] == 2
    assert metrics["total_quantity_restocked"] == 60
    assert metrics["average_restock_quantity"] == 30
    assert pens["most_recent_restock"]["quantity_restocked"] == 10
    assert pens["most_recent_restock"]["restocker"]["payroll_number"] == "A001"

    low = TrackingService.get_tracked_bulk_assets(session, low_stock_only=True)
    assert [i["name"] for i in low["items"]] == ["Forms", "Gloves"]
    assert low["summary"]["total_assets"] == 2


def test_discontinued_counted(session, inventory):
    BulkAssetService.update_bulk_asset(
        session, inventory["gloves"], BulkAssetUpdate(bulk_status=BulkStatus.discontinued), "K001"
    )
    summary = TrackingService.get_tracked_bulk_assets(session)["summary"]
    assert summary["discontinued_assets"] == 1
    assert summary["active_assets"] == 1


def test_low_stock_assets(session, inventory):
    low = TrackingService.get_low_stock_assets(session)
    assert [(a["name"], a["current_stock_level"]) for a in low] == [("Forms", 0), ("Gloves", 5)]


def test_bulk_details(session, inventory):
    AssignmentService.create_assignment(
        session, AssignmentCreate(asset_id=inventory["pens"], assigned_to="V001", assigned_by="K001", quantity=4)
    )
    details = TrackingService.get_bulk_asset_details(session, inventory["pens"])
    assert details["current_stock_level"] == 156
    assert [r["quantity_restocked"] for r in details["recent_restocks"]] == [10, 50]
    assert details["recent_restocks"][0]["restocked_by_name"] == "Super Admin"
    assert details["recent_movements"][0]["movement_type"].value == "assignment"
    assert details["recent_assignments"][0]["quantity_outstanding"] == 4
    assert details["recent_assignments"][0]["is_active"] is True

    assert TrackingService.get_bulk_asset_details(session, inventory["laptop"]) is None
    assert TrackingService.get_bulk_restock_history(session, inventory["laptop"]) is None


# ---- HTTP -----------------------------------------------------------------


def test_tracking_endpoints(client, viewer_headers, inventory):
    r = client.get("/unique-asset-tracking/summary", headers=viewer_headers)
    assert r.status_code == 200
    assert r.json()["currently_assigned"] == 1

    r = client.get("/unique-asset-tracking/attention", headers=viewer_headers)
    assert r.json() == []

    r = client.get(f"/unique-asset-tracking/{inventory['laptop']}", headers=viewer_headers)
    assert r.json()["current_assignment"]["assigned_to"] == "V001"

    r = client.get(f"/unique-asset-tracking/{inventory['laptop']}/history", headers=viewer_headers)
    assert len(r.json()["movements"]) == 2

    assert client.get("/unique-asset-tracking/999", headers=viewer_headers).status_code == 404

    r = client.get("/bulk-asset-tracking?search=pen", headers=viewer_headers)
    data = r.json()
    assert data["total"] == 1
    assert data["summary"]["total_assets"] == 1
    assert data["items"][0]["stock_metrics"]["total_restock_events"] == 2

    r = client.get("/bulk-asset-tracking/low-stock", headers=viewer_headers)
    assert [a["name"] for a in r.json()] == ["Forms", "Gloves"]

    r = client.get(f"/bulk-asset-tracking/{inventory['pens']}/history", headers=viewer_headers)
    assert [h["quantity_restocked"] for h in r.json()] == [10, 50]

    assert client.get(f"/bulk-asset-tracking/{inventory['laptop']}", headers=viewer_headers).status_code == 404
    assert client.get("/bulk-asset-tracking").status_code == 401


def test_bulk_export(client, viewer_headers, inventory):
    r = client.get("/bulk-asset-tracking/export.xlsx", headers=viewer_headers)
    assert r.status_code == 200
    assert 'filename="bulk-assets.xlsx"' in r.headers["content-disposition"]

    ws = load_workbook(io.BytesIO(r.content)).active
    assert ws.title == "Bulk assets"
    assert [c.value for c in ws[1]][:3] == ["ID", "Name", "Model"]
    assert [ws.cell(row=r, column=2).value for r in range(2, 5)] == ["Pens", "Gloves", "Forms"]
    assert ws["D2"].value == "active"
    assert ws["G3"].value == "yes"
    assert ws["I2"].value == "Kim Keeper"


def _table_snapshot(session) -> dict:
    session.expire_all()
    return {
        model.__name__: [row.model_dump() for row in session.exec(select(model)).all()]
        for model in (Asset, AssetAssignment, AssetMovement, RestockLog)
    }


def test_tracking_reads_do_not_write(client, viewer_headers, session, inventory):
    before = _table_snapshot(session)
    later = utcnow() + timedelta(days=31)

    TrackingService.get_tracked_unique_assets(session, search="l")
    TrackingService.get_unique_asset_details(session, inventory["laptop"])
    TrackingService.get_unique_asset_history(session, inventory["laptop"])
    TrackingService.get_assets_needing_attention(session, now=later)
    TrackingService.get_tracking_summary(session)
    TrackingService.get_tracked_bulk_assets(session, low_stock_only=True)
    TrackingService.get_all_tracked_bulk_assets(session)
    TrackingService.get_bulk_asset_details(session, inventory["pens"])
    TrackingService.get_bulk_restock_history(session, inventory["pens"])
    TrackingService.get_low_stock_assets(session)

    for path in (
        "/unique-asset-tracking",
        "/unique-asset-tracking/summary",
        "/unique-asset-tracking/attention",
        f"/unique-asset-tracking/{inventory['laptop']}",
        f"/unique-asset-tracking/{inventory['laptop']}/history",
        "/bulk-asset-tracking",
        "/bulk-asset-tracking/low-stock",
        "/bulk-asset-tracking/export.xlsx",
        f"/bulk-asset-tracking/{inventory['pens']}",
        f"/bulk-asset-tracking/{inventory['pens']}/history",
    ):
        assert client.get(path, headers=viewer_headers).status_code == 200, path

    assert _table_snapshot(session) == before
