from sqlmodel import select

from rail_assets.models import AssetMovement, BulkStatus, MovementType, RestockLog
from rail_assets.schemas import BulkAssetCreate, BulkAssetUpdate
from rail_assets.services.bulk_assets import BulkAssetService
from rail_assets.services.ledger import bulk_status_for, is_low_stock, stock_percentage


def _create(client, headers, location_id, **overrides):
    body = {
        "name": "Pens",
        "location_id": location_id,
        "keeper_payroll_number": "K001",
        "quantity": 100,
        "minimum_threshold": 10,
    }
    body.update(overrides)
    return client.post("/bulk-assets", json=body, headers=headers)


def test_stock_helpers():
    assert bulk_status_for(5) == BulkStatus.active
    assert bulk_status_for(0) == BulkStatus.out_of_stock
    assert bulk_status_for(5, BulkStatus.discontinued) == BulkStatus.discontinued

    assert is_low_stock(10, 10)
    assert not is_low_stock(11, 10)
    assert stock_percentage(5, 10) == 50
    assert stock_percentage(5, 0) is None


def test_create_bulk_asset_writes_initial_movement(client, keeper_headers, seeded, session):
    r = _create(client, keeper_headers, seeded.hq)
    assert r.status_code == 201
    data = r.json()
    assert data["kind"] == "bulk"
    assert data["current_stock_level"] == 100
    assert data["bulk_status"] == "active"
    assert data["last_restocked"] is not None
    assert "serial_number" not in data

    movements = session.exec(select(AssetMovement).where(AssetMovement.asset_id == data["asset_id"])).all()
    assert len(movements) == 1
    assert movements[0].movement_type == MovementType.adjustment
    assert movements[0].quantity == 100
    assert movements[0].to_location_id == seeded.hq
    assert movements[0].notes.startswith("Initial stock: 100 units.")


def test_create_with_zero_quantity_is_out_of_stock(client, keeper_headers, seeded):
    r = _create(client, keeper_headers, seeded.hq, quantity=0)
    assert r.status_code == 201
    assert r.json()["bulk_status"] == "out_of_stock"


def test_create_validation(client, keeper_headers, seeded):
    r = _create(client, keeper_headers, seeded.hq, quantity=-1)
    assert r.status_code == 400
    assert r.json()["detail"]["message"] == "Quantity cannot be negative"

    r = _create(client, keeper_headers, seeded.hq, keeper_payroll_number="NOBODY")
    assert r.status_code == 404

    r = _create(client, keeper_headers, 999)
    assert r.status_code == 404


def test_failed_create_leaves_nothing_behind(session, seeded):
    result = BulkAssetService.create_bulk_asset(
        session,
        BulkAssetCreate(
            name="Gloves", location_id=999, keeper_payroll_number="K001", quantity=5
        ),
    )
    assert not result.success
    assert BulkAssetService.list_bulk_assets(session)["total"] == 0
    assert session.exec(select(AssetMovement)).all() == []


def test_restock(client, keeper_headers, seeded, session):
    asset_id = _create(client, keeper_headers, seeded.hq, quantity=0).json()["asset_id"]

    r = client.post(f"/bulk-assets/{asset_id}/restock", json={"quantity": 25, "notes": "delivery"}, headers=keeper_headers)
    assert r.status_code == 200
    assert r.json()["current_stock_level"] == 25
    assert r.json()["bulk_status"] == "active"

    logs = session.exec(select(RestockLog).where(RestockLog.asset_id == asset_id)).all()
    assert [(log.quantity_restocked, log.restocked_by) for log in logs] == [(25, "K001")]

    r = client.post(f"/bulk-assets/{asset_id}/restock", json={"quantity": 0}, headers=keeper_headers)
    assert r.status_code == 422


def test_update_quantity_logs_adjustments(session, seeded):
    asset = BulkAssetService.create_bulk_asset(
        session,
        BulkAssetCreate(name="Fuses", location_id=seeded.hq, keeper_payroll_number="K001", quantity=50),
    ).data
    asset_id = asset.asset_id

    result = BulkAssetService.update_bulk_asset(session, asset_id, BulkAssetUpdate(quantity=20), "K001")
    assert result.success
    assert result.data.current_stock_level == 20

    result = BulkAssetService.update_bulk_asset(session, asset_id, BulkAssetUpdate(quantity=0), "K001")
    assert result.data.bulk_status == BulkStatus.out_of_stock

    result = BulkAssetService.update_bulk_asset(session, asset_id, BulkAssetUpdate(quantity=30), "K001")
    assert result.data.bulk_status == BulkStatus.active

    adjustments = session.exec(
        select(AssetMovement)
        .where(AssetMovement.asset_id == asset_id, AssetMovement.movement_type == MovementType.adjustment)
        .order_by(AssetMovement.movement_id)
    ).all()
    # initial, -30, -20, +30
    assert [m.quantity for m in adjustments] == [50, 30, 20, 30]
    assert adjustments[1].from_location_id == seeded.hq and adjustments[1].to_location_id is None
    assert adjustments[3].to_location_id == seeded.hq and adjustments[3].from_location_id is None

    restocks = session.exec(select(RestockLog).where(RestockLog.asset_id == asset_id)).all()
    assert [r.quantity_restocked for r in restocks] == [30]


def test_update_location_and_keeper(session, seeded):
    asset_id = BulkAssetService.create_bulk_asset(
        session,
        BulkAssetCreate(name="Rags", location_id=seeded.hq, keeper_payroll_number="K001", quantity=5),
    ).data.asset_id

    result = BulkAssetService.update_bulk_asset(
        session,
        asset_id,
        BulkAssetUpdate(location_id=seeded.depot, keeper_payroll_number="V001"),
        "A001",
    )
    assert result.success
    kinds = [
        m.movement_type
        for m in session.exec(
            select(AssetMovement).where(AssetMovement.asset_id == asset_id).order_by(AssetMovement.movement_id)
        ).all()
    ]
    assert kinds == [MovementType.adjustment, MovementType.transfer, MovementType.assignment]


def test_discontinued_survives_quantity_change(session, seeded):
    asset_id = BulkAssetService.create_bulk_asset(
        session,
        BulkAssetCreate(name="Old forms", location_id=seeded.hq, keeper_payroll_number="K001", quantity=5),
    ).data.asset_id
    BulkAssetService.update_bulk_asset(
        session, asset_id, BulkAssetUpdate(bulk_status=BulkStatus.discontinued), "K001"
    )
    result = BulkAssetService.update_bulk_asset(session, asset_id, BulkAssetUpdate(quantity=40), "K001")
    assert result.data.bulk_status == BulkStatus.discontinued


def test_get_list_delete(client, keeper_headers, viewer_headers, seeded):
    asset_id = _create(client, keeper_headers, seeded.hq).json()["asset_id"]
    _create(client, keeper_headers, seeded.hq, name="Gloves")

    r = client.get("/bulk-assets", headers=viewer_headers)
    assert r.json()["total"] == 2

    assert client.get(f"/bulk-assets/{asset_id}", headers=viewer_headers).json()["name"] == "Pens"
    assert client.delete(f"/bulk-assets/{asset_id}", headers=viewer_headers).status_code == 403
    assert client.delete(f"/bulk-assets/{asset_id}", headers=keeper_headers).status_code == 200
    assert client.get(f"/bulk-assets/{asset_id}", headers=viewer_headers).status_code == 404
