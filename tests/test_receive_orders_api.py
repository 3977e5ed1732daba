import pytest
from sqlalchemy import select, func

from app.core.errors import InvalidStateTransition
from app.core.security import Principal

from app.db.models.common import STATUS_ACTIVE, STATUS_VOID
from app.db.models.factory import FactoryLedgerEntry
from app.db.models.org import ROLE_BOSS
from app.db.models.orders import ReceiveOrder
from app.db.models.payments import FactoryPayment
from app.db.models.security_audit import AuditLog
from conftest import auth, receive_body, factory_state
from services.orders.service import void_receive_order


def _payments_for(database, payment_no):
    with database.session() as db:
        return db.execute(
            select(FactoryPayment.status, FactoryPayment.amount).where(FactoryPayment.payment_no == payment_no)
        ).all()


def test_create_receive_order_settles_factory_account(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 100, 10, 5), payment=50, method="cash"))

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    assert body["data"]["orderNo"] == "S0001"
    assert body["data"]["factoryStatus"] == {"balance": "0.00", "debt": "50.00"}
    assert factory_state(client, world) == ("0.00", "50.00")


def test_create_records_one_implicit_payment_per_order(client, world, database):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 80, 10, 5), payment=30, method="wechat"))
    order_no = r.json()["data"]["orderNo"]

    rows = _payments_for(database, order_no)
    assert len(rows) == 1
    assert rows[0].status == STATUS_ACTIVE


def test_order_without_payment_writes_no_payment_row(client, world, database):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 100, 10, 5)))
    assert r.status_code == 201
    assert _payments_for(database, r.json()["data"]["orderNo"]) == []
    assert factory_state(client, world) == ("0.00", "100.00")


def test_totals_default_to_item_sums(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 60, 10, 5), (world.polo_id, 40.5, 2.5, 3)))
    order_id = r.json()["data"]["id"]

    detail = client.get(f"/api/receive-orders/{order_id}", headers=auth(world.boss_token)).json()["data"]
    assert detail["totalFee"] == "100.50"
    assert detail["totalWeight"] == "12.50"
    assert detail["totalQuantity"] == 8
    assert [i["fee"] for i in detail["items"]] == ["60.00", "40.50"]


def test_explicit_total_fee_mismatch_is_accepted_and_logged(client, world, captured_logs):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 60, 10, 5), total_fee=100))

    assert r.status_code == 201
    assert factory_state(client, world) == ("0.00", "100.00")
    assert any(rec["message"] == "receive_order_fee_mismatch" for rec in captured_logs())


def test_negative_amounts_are_rejected(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, -5, 10, 5)))
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"

    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 5, 10, 5), payment=-1))
    assert r.status_code == 400


def test_items_are_required(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token), json=receive_body(world))
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_process_from_another_org_is_rejected(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 5, 1, 1), processId=world.process_b_id))
    assert r.status_code == 400


def test_factory_from_another_org_is_not_found(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 5, 1, 1), factoryId=world.factory_b_id))
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


def test_cross_org_body_is_rejected_without_writing(client, world, database):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 100, 10, 5), payment=50, orgId="org-b"))

    assert r.status_code == 403
    assert r.json()["code"] == "CROSS_ORG_ACCESS_DENIED"
    with database.session() as db:
        assert db.execute(select(func.count()).select_from(ReceiveOrder)).scalar_one() == 0
        assert db.execute(select(func.count()).select_from(FactoryLedgerEntry)).scalar_one() == 0
        assert db.execute(select(func.count()).select_from(FactoryPayment)).scalar_one() == 0
    assert factory_state(client, world) == ("0.00", "0.00")


def test_matching_body_org_is_accepted(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 1, 1, 1), orgId="org-a"))
    assert r.status_code == 201


def test_void_then_enable_restores_account_and_payment(client, world, database):
    client.post("/api/receive-orders", headers=auth(world.boss_token),
                json=receive_body(world, (world.tee_id, 30, 1, 1), payment=100))
    assert factory_state(client, world) == ("70.00", "0.00")

    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 120, 10, 5), payment=20, method="cash"))
    order = r.json()["data"]
    assert order["factoryStatus"] == {"balance": "0.00", "debt": "30.00"}

    r = client.delete(f"/api/receive-orders/{order['id']}", headers=auth(world.boss_token))
    assert r.status_code == 200, r.text
    assert r.json()["data"]["status"] == STATUS_VOID
    assert r.json()["data"]["factoryStatus"] == {"balance": "70.00", "debt": "0.00"}
    assert [row.status for row in _payments_for(database, order["orderNo"])] == [STATUS_VOID]

    r = client.put(f"/api/receive-orders/{order['id']}/enable", headers=auth(world.boss_token))
    assert r.status_code == 200, r.text
    assert r.json()["data"]["factoryStatus"] == {"balance": "0.00", "debt": "30.00"}
    rows = _payments_for(database, order["orderNo"])
    assert [row.status for row in rows] == [STATUS_ACTIVE]


def test_void_twice_and_enable_active_are_rejected(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 10, 1, 1)))
    order_id = r.json()["data"]["id"]

    r = client.put(f"/api/receive-orders/{order_id}/enable", headers=auth(world.boss_token))
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_STATE"

    assert client.delete(f"/api/receive-orders/{order_id}", headers=auth(world.boss_token)).status_code == 200
    r = client.delete(f"/api/receive-orders/{order_id}", headers=auth(world.boss_token))
    assert r.status_code == 400
    assert factory_state(client, world) == ("0.00", "0.00")


def test_void_missing_implicit_payment_rolls_back(client, world, database):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 100, 10, 5), payment=40))
    order = r.json()["data"]
    with database.transaction() as db:
        db.query(FactoryPayment).filter(FactoryPayment.payment_no == order["orderNo"]).delete()

    r = client.delete(f"/api/receive-orders/{order['id']}", headers=auth(world.boss_token))
    assert r.status_code == 500
    assert r.json()["code"] == "CONSISTENCY_ERROR"
    assert factory_state(client, world) == ("0.00", "60.00")
    detail = client.get(f"/api/receive-orders/{order['id']}", headers=auth(world.boss_token)).json()["data"]
    assert detail["status"] == STATUS_ACTIVE


def test_receive_orders_cannot_be_edited(client, world, database):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 10, 1, 1)))
    order_id = r.json()["data"]["id"]

    r = client.put(f"/api/receive-orders/{order_id}", headers=auth(world.boss_token), json={"remark": "x"})
    assert r.status_code == 403
    assert r.json()["code"] == "EDIT_DISABLED_FOR_DATA_INTEGRITY"

    with database.session() as db:
        row = db.query(AuditLog).filter(AuditLog.action == "http.denied").one()
    assert row.status_code == 403
    assert row.actor == "boss"
    assert row.org_id == "org-a"
    assert row.success is False


def test_specialist_only_sees_own_orders(client, world):
    client.post("/api/receive-orders", headers=auth(world.boss_token),
                json=receive_body(world, (world.tee_id, 10, 1, 1)))
    client.post("/api/receive-orders", headers=auth(world.specialist_token),
                json=receive_body(world, (world.polo_id, 20, 1, 1)))

    mine = client.get("/api/receive-orders", headers=auth(world.specialist_token)).json()["data"]
    everything = client.get("/api/receive-orders", headers=auth(world.boss_token)).json()["data"]
    assert mine["total"] == 1
    assert mine["list"][0]["createdBy"] == world.specialist_id
    assert everything["total"] == 2


def test_list_filters_and_clamps_paging(client, world):
    for pid in (world.tee_id, world.polo_id, world.polo_id):
        client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (pid, 10, 1, 1)))

    data = client.get("/api/receive-orders", params={"productCode": "ST-002"},
                      headers=auth(world.boss_token)).json()["data"]
    assert data["total"] == 2

    data = client.get("/api/receive-orders", params={"keyword": "Sunrise", "page": "abc", "pageSize": "5000"},
                      headers=auth(world.boss_token)).json()["data"]
    assert data["total"] == 3
    assert data["page"] == 1
    assert data["pageSize"] == 100


def test_other_org_cannot_read_order(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 10, 1, 1)))
    order_id = r.json()["data"]["id"]

    r = client.get(f"/api/receive-orders/{order_id}", headers=auth(world.boss_b_token))
    assert r.status_code == 404
    assert client.get("/api/receive-orders", headers=auth(world.boss_b_token)).json()["data"]["total"] == 0


def test_account_journal_lists_every_mutation(client, world):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 100, 10, 5), payment=40))
    order = r.json()["data"]
    client.delete(f"/api/receive-orders/{order['id']}", headers=auth(world.boss_token))

    r = client.get(f"/api/factories/{world.factory_id}/accounts", headers=auth(world.boss_token))
    entries = r.json()["data"]["list"]
    assert [e["entryType"] for e in entries] == ["order_void", "order_create"]
    assert entries[1]["debtBefore"] == "0.00"
    assert entries[1]["debtAfter"] == "60.00"
    assert entries[0]["debtAfter"] == "0.00"
    assert {e["refNo"] for e in entries} == {order["orderNo"]}


def test_void_from_a_stale_read_does_not_reverse_twice(client, world, database):
    r = client.post("/api/receive-orders", headers=auth(world.boss_token),
                    json=receive_body(world, (world.tee_id, 100, 10, 5)))
    order_id = r.json()["data"]["id"]
    assert factory_state(client, world) == ("0.00", "100.00")
    boss = Principal(user_id=world.boss_id, username="boss", org_id=world.org_id, role_id=ROLE_BOSS)

    # The second request loaded the order before the first one voided it.
    db = database.session()
    try:
        assert db.get(ReceiveOrder, order_id).status == STATUS_ACTIVE
        assert client.delete(f"/api/receive-orders/{order_id}", headers=auth(world.boss_token)).status_code == 200

        with pytest.raises(InvalidStateTransition):
            void_receive_order(db, boss, order_id)
        db.rollback()
    finally:
        db.close()

    assert factory_state(client, world) == ("0.00", "0.00")
    with database.session() as db:
        voids = db.query(FactoryLedgerEntry).filter(FactoryLedgerEntry.entry_type == "order_void").count()
    assert voids == 1
