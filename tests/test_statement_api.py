from datetime import datetime, timedelta, timezone

import pytest

from conftest import auth, receive_body, send_body

TODAY = datetime.now(timezone.utc).date()
START = (TODAY - timedelta(days=1)).isoformat()
END = (TODAY + timedelta(days=1)).isoformat()


def _statement(client, world, token=None, **params):
    query = {"factoryName": world.factory_name, "startDate": START, "endDate": END, **params}
    return client.get("/api/statement", params=query, headers=auth(token or world.boss_token))


def test_order_payment_is_not_counted_twice(client, world):
    client.post("/api/receive-orders", headers=auth(world.boss_token),
                json=receive_body(world, (world.tee_id, 100, 9, 5), payment=50, method="cash"))

    r = _statement(client, world)
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["totalFee"] == "100.00"
    assert data["paidAmount"] == "50.00"
    assert data["unpaidAmount"] == "50.00"


def test_statement_totals_across_orders_and_payments(client, world):
    client.post("/api/send-orders", headers=auth(world.boss_token),
                json=send_body(world, (world.tee_id, 10, 5), (world.polo_id, 10, 5)))
    client.post("/api/receive-orders", headers=auth(world.boss_token),
                json=receive_body(world, (world.tee_id, 60, 9.5, 5), (world.polo_id, 40, 9.5, 5), payment=50))
    client.post(f"/api/factories/{world.factory_id}/payments", headers=auth(world.boss_token),
                json={"amount": 30})

    data = _statement(client, world).json()["data"]
    assert data["factoryName"] == world.factory_name
    assert data["sendWeight"] == "20.0"
    assert data["receiveWeight"] == "19.0"
    assert data["lossRate"] == "5.00"
    assert data["totalFee"] == "100.00"
    assert data["paidAmount"] == "80.00"
    assert data["unpaidAmount"] == "20.00"

    styles = {s["styleNo"]: s for s in data["styleSummary"]}
    assert styles["ST-001"]["fee"] == "60.00"
    assert styles["ST-001"]["paymentAmount"] == "30.00"
    assert styles["ST-002"]["paymentAmount"] == "20.00"
    assert styles["ST-002"]["sendWeight"] == "10.0"
    assert [p["process"] for p in data["processComparison"]] == ["Dyeing"]
    assert len(data["orders"]) == 4


def test_voided_orders_and_payments_are_left_out(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 100, 9, 5), payment=50))
    client.delete(f"/api/receive-orders/{r.json()['data']['id']}", headers=auth(world.boss_token))
    r = client.post(f"/api/factories/{world.factory_id}/payments", headers=auth(world.boss_token),
                    json={"amount": 30})
    client.put(f"/api/factories/{world.factory_id}/payments/{r.json()['data']['id']}/void",
               headers=auth(world.boss_token))

    data = _statement(client, world).json()["data"]
    assert data["totalFee"] == "0.00"
    assert data["paidAmount"] == "0.00"
    assert data["orders"] == []


def test_product_filter(client, world):
    client.post("/api/receive-orders", headers=auth(world.boss_token),
                json=receive_body(world, (world.tee_id, 60, 9, 5), (world.polo_id, 40, 9, 5)))

    data = _statement(client, world, productId=str(world.polo_id)).json()["data"]
    assert [s["styleNo"] for s in data["styleSummary"]] == ["ST-002"]
    assert [o["productId"] for o in data["orders"]] == [world.polo_id]


def test_lookup_by_factory_id(client, world):
    r = client.get("/api/statement", headers=auth(world.boss_token),
                   params={"factoryId": world.factory_id, "startDate": START, "endDate": END})
    assert r.status_code == 200
    assert r.json()["data"]["totalFee"] == "0.00"


def test_window_outside_orders_is_empty(client, world):
    client.post("/api/receive-orders", headers=auth(world.boss_token),
                json=receive_body(world, (world.tee_id, 100, 9, 5)))
    data = _statement(client, world, startDate="2020-01-01", endDate="2020-01-31").json()["data"]
    assert data["totalFee"] == "0.00"
    assert data["lossRate"] == "0.00"


@pytest.mark.parametrize("params", [
    {"factoryName": None},
    {"startDate": None},
    {"endDate": "2026/10/01"},
    {"startDate": "2026-10-05", "endDate": "2026-10-01"},
    {"productId": "abc"},
])
def test_bad_parameters_are_400(client, world, params):
    query = {"factoryName": world.factory_name, "startDate": START, "endDate": END, **params}
    query = {k: v for k, v in query.items() if v is not None}
    r = client.get("/api/statement", params=query, headers=auth(world.boss_token))
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_unknown_or_foreign_factory_is_404(client, world):
    assert _statement(client, world, factoryName="Nobody").status_code == 404
    assert _statement(client, world, token=world.boss_b_token).status_code == 404
