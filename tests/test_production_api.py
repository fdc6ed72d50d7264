"""Sensor data, work-order completion and alert API tests.

Learn: The database is a scripted FakeSession (see conftest) so these
tests check request validation, transaction handling and — most
importantly — that subscribers get pushed the right payload after a
successful write and nothing after a failed one.
"""

import json

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import FakeWebSocket


def subscribe(app, msg_type, **fields):
    registry = app.state.connections
    ws = FakeWebSocket()
    conn = registry.on_open(ws)
    registry.on_message(conn, json.dumps({"type": msg_type, **fields}))
    return ws


# ═══════════════════════════════════════════════════════════
# Sensor data
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sensor_reading_is_stored_and_pushed(client, app, use_db, admin_headers):
    db = use_db([
        [{"sensor_id": 5, "var": "temp"}],
        [{"value": 21.5, "date_time": "2025-03-01T08:00:00"}],
    ])
    watcher = subscribe(app, "subscribe", sensor_id=5)
    other = subscribe(app, "subscribe", sensor_id=6)

    r = await client.post(
        "/api/v1/sensor-data",
        json={"sensor_id": 5, "value": 21.5},
        headers=admin_headers,
    )
    assert r.status_code == 201
    assert r.json()["errorsExistFlag"] is False
    assert db.committed

    await app.state.connections.drain()
    assert watcher.sent == [{
        "data": {
            "sensorId": 5,
            "sensor_var": "temp",
            "value": 21.5,
            "time": "2025-03-01T08:00:00",
        }
    }]
    assert other.sent == []


@pytest.mark.asyncio
async def test_sensor_reading_unknown_sensor(client, app, use_db, admin_headers):
    db = use_db([[]])
    watcher = subscribe(app, "subscribe", sensor_id=99)

    r = await client.post(
        "/api/v1/sensor-data",
        json={"sensor_id": 99, "value": 1},
        headers=admin_headers,
    )
    assert r.status_code == 404
    assert not db.committed

    await app.state.connections.drain()
    assert watcher.sent == []


@pytest.mark.asyncio
async def test_sensor_reading_requires_auth(client, use_db):
    use_db([])
    r = await client.post("/api/v1/sensor-data", json={"sensor_id": 5, "value": 1})
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Work-order completion
# ═══════════════════════════════════════════════════════════

COMPLETION = {
    "WorkOrderNumber": "WO-100",
    "ExecutionDate": "2025-03-01",
    "Number": "P-0001",
    "Ready": 4,
    "Scrap": 1,
}


def work_order_row(**overrides):
    row = {
        "work_order_id": 100,
        "planned_quantity": 10,
        "completed_quantity": 6,
        "dispatch_pending": 2,
        "scrap_pending": 0,
        "reject_pending": 0,
        "number_exists": False,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_completion_updates_order_and_pushes_advance(client, app, use_db, admin_headers):
    db = use_db([
        [work_order_row()],
        [],
        [{
            "WorkOrderId": 100,
            "CompletedQuantity": 10,
            "ScrapPending": 1,
            "RejectPending": 0,
            "Status": "COMPLETED",
        }],
    ])
    advance = subscribe(app, "subscribe_work_orders_advance", organization_id=3)
    new_orders = subscribe(app, "subscribe_new_work_orders", organization_id=3)

    r = await client.put(
        "/api/v1/work-orders/3/completions", json=COMPLETION, headers=admin_headers
    )
    assert r.status_code == 200
    body = r.json()
    assert body["totalResults"] == 1
    assert body["items"]["Status"] == "COMPLETED"
    assert db.committed and not db.rolled_back

    _, update_params = db.statements[2]
    assert update_params["completed_quantity"] == 10
    assert update_params["dispatch_pending"] == 6
    assert update_params["scrap_pending"] == 1
    assert update_params["status"] == "COMPLETED"

    await app.state.connections.drain()
    assert advance.sent == [{
        "totalResults": 1,
        "items": {
            "WorkOrderId": 100,
            "CompletedQuantity": 10,
            "Status": "COMPLETED",
            "ExecutionDate": "2025-03-01",
            "Number": "P-0001",
            "Quantity": 4.0,
        },
    }]
    assert new_orders.sent == []


@pytest.mark.asyncio
async def test_partial_completion_is_in_process(client, use_db, admin_headers):
    db = use_db([
        [work_order_row(completed_quantity=0)],
        [],
        [{"WorkOrderId": 100, "CompletedQuantity": 4, "ScrapPending": 1,
          "RejectPending": 0, "Status": "IN_PROCESS"}],
    ])
    r = await client.put(
        "/api/v1/work-orders/3/completions", json=COMPLETION, headers=admin_headers
    )
    assert r.status_code == 200
    assert db.statements[2][1]["status"] == "IN_PROCESS"


@pytest.mark.asyncio
async def test_completion_unknown_work_order(client, use_db, admin_headers):
    db = use_db([[]])
    r = await client.put(
        "/api/v1/work-orders/3/completions", json=COMPLETION, headers=admin_headers
    )
    assert r.status_code == 404
    assert len(db.statements) == 1


@pytest.mark.asyncio
async def test_completion_duplicate_number(client, use_db, admin_headers):
    use_db([[work_order_row(number_exists=True)]])
    r = await client.put(
        "/api/v1/work-orders/3/completions", json=COMPLETION, headers=admin_headers
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_completion_exceeding_plan(client, app, use_db, admin_headers):
    db = use_db([[work_order_row(completed_quantity=8)]])
    advance = subscribe(app, "subscribe_work_orders_advance", organization_id=3)

    r = await client.put(
        "/api/v1/work-orders/3/completions", json=COMPLETION, headers=admin_headers
    )
    assert r.status_code == 400
    assert "exceeds" in r.json()["detail"]
    assert not db.committed

    await app.state.connections.drain()
    assert advance.sent == []


@pytest.mark.asyncio
async def test_completion_integrity_error_rolls_back(client, app, use_db, admin_headers):
    db = use_db([
        [work_order_row()],
        IntegrityError("INSERT INTO mes_work_execution", {}, Exception("duplicate key")),
    ])
    advance = subscribe(app, "subscribe_work_orders_advance", organization_id=3)

    r = await client.put(
        "/api/v1/work-orders/3/completions", json=COMPLETION, headers=admin_headers
    )
    assert r.status_code == 409
    assert db.rolled_back and not db.committed

    await app.state.connections.drain()
    assert advance.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("ready", [0, -2])
async def test_completion_requires_positive_quantity(client, use_db, admin_headers, ready):
    use_db([])
    r = await client.put(
        "/api/v1/work-orders/3/completions",
        json={**COMPLETION, "Ready": ready},
        headers=admin_headers,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_completion_requires_fields(client, use_db, admin_headers):
    use_db([])
    r = await client.put(
        "/api/v1/work-orders/3/completions",
        json={"Ready": 1},
        headers=admin_headers,
    )
    assert r.status_code == 422


# ═══════════════════════════════════════════════════════════
# Alerts
# ═══════════════════════════════════════════════════════════


def alert_row(**overrides):
    row = {
        "alert_id": 10,
        "organization_id": 4,
        "machine_id": 2,
        "status": "assigned",
        "response_time": "2025-03-01T09:15:00",
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_attend_alert_pushes_update(client, app, use_db, admin_headers):
    db = use_db([[alert_row()]])
    watcher = subscribe(app, "subscribe_alerts", organization_id=4)
    other_org = subscribe(app, "subscribe_alerts", organization_id=5)

    r = await client.put("/api/v1/alerts/10/attend", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["items"] == [alert_row()]
    assert db.committed
    assert db.statements[0][1] == {"alert_id": 10}

    await app.state.connections.drain()
    assert watcher.sent == [{"action": "update", "data": alert_row()}]
    assert other_org.sent == []


@pytest.mark.asyncio
async def test_delete_alert_pushes_delete(client, app, use_db, admin_headers):
    db = use_db([[alert_row(status="pending")]])
    watcher = subscribe(app, "subscribe_alerts", organization_id=4)

    r = await client.delete("/api/v1/alerts/10", headers=admin_headers)
    assert r.status_code == 200
    assert db.committed

    await app.state.connections.drain()
    assert watcher.sent == [{"action": "delete", "data": alert_row(status="pending")}]


@pytest.mark.asyncio
async def test_unknown_alert_is_404_and_not_pushed(client, app, use_db, admin_headers):
    db = use_db([[]])
    watcher = subscribe(app, "subscribe_alerts", organization_id=4)

    r = await client.put("/api/v1/alerts/99/attend", headers=admin_headers)
    assert r.status_code == 404
    assert not db.committed

    await app.state.connections.drain()
    assert watcher.sent == []


@pytest.mark.asyncio
async def test_alert_routes_require_auth(client, use_db):
    use_db([])
    r = await client.delete("/api/v1/alerts/10")
    assert r.status_code == 401
