from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.errors import EditDisabled
from app.core.security import Principal, get_principal
from app.db.models.orders import SendOrder, ReceiveOrder
from app.db.session import get_db, in_transaction
from services._crud import ok, paged, page_window, money, parse_day
from services.ledger.settlement import AccountState
from services.orders import service
from services.orders.schemas import SendOrderIn, ReceiveOrderIn, SendOrderUpdateIn

send_router = APIRouter(prefix="/send-orders", tags=["send-orders"])
receive_router = APIRouter(prefix="/receive-orders", tags=["receive-orders"])


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def factory_status_out(account: AccountState) -> dict:
    return {"balance": money(account.balance), "debt": money(account.debt)}


def item_out(item) -> dict:
    out = {
        "id": item.id,
        "productId": item.product_id,
        "productNo": item.product_no,
        "colorId": item.color_id,
        "colorCode": item.color_code,
        "sizeId": item.size_id,
        "sizeCode": item.size_code,
        "weight": money(item.weight),
        "quantity": item.quantity,
    }
    if hasattr(item, "fee"):
        out["fee"] = money(item.fee)
    return out


def order_out(o, with_items: bool = False) -> dict:
    out = {
        "id": o.id,
        "orgId": o.org_id,
        "orderNo": o.order_no,
        "factoryId": o.factory_id,
        "factoryName": o.factory.name if o.factory else None,
        "processId": o.process_id,
        "processName": o.process.name if o.process else None,
        "totalWeight": money(o.total_weight),
        "totalQuantity": o.total_quantity,
        "remark": o.remark,
        "status": o.status,
        "createdBy": o.created_by,
        "createdAt": o.created_at.isoformat() if o.created_at else None,
    }
    if isinstance(o, ReceiveOrder):
        out.update(
            totalFee=money(o.total_fee),
            paymentAmount=money(o.payment_amount),
            paymentMethod=o.payment_method,
        )
    if with_items:
        out["items"] = [item_out(i) for i in o.items]
    return out


def _list(model, principal: Principal, db: Session, status, factoryId, processId,
          startDate, endDate, keyword, productCode, page, pageSize) -> dict:
    p, size, offset, limit = page_window(page, pageSize)
    rows, total = service.list_orders(
        db, model, principal,
        status=status,
        factory_id=factoryId,
        process_id=processId,
        start=parse_day(startDate, "startDate") if startDate else None,
        end=parse_day(endDate, "endDate") if endDate else None,
        keyword=keyword,
        product_code=productCode,
        offset=offset,
        limit=limit,
    )
    return ok(paged([order_out(o) for o in rows], total, p, size))


# ---- send orders ----

@send_router.get("")
def list_send_orders(
    status: int | None = None,
    factoryId: int | None = None,
    processId: int | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    keyword: str | None = None,
    productCode: str | None = None,
    page: str | None = None,
    pageSize: str | None = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return _list(SendOrder, principal, db, status, factoryId, processId,
                 startDate, endDate, keyword, productCode, page, pageSize)


@send_router.get("/{order_id}")
def get_send_order(order_id: int, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return ok(order_out(service.get_order(db, SendOrder, principal.org_id, order_id), with_items=True))


@send_router.post("", status_code=201)
def create_send_order(payload: SendOrderIn, request: Request,
                      principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        order = service.create_send_order(db, principal, payload, _request_id(request))
        data = {"id": order.id, "orderNo": order.order_no}
    return ok(data, "Send order created")


@send_router.put("/{order_id}")
def update_send_order(order_id: int, payload: SendOrderUpdateIn, request: Request,
                      principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        order = service.update_send_order_remark(db, principal, order_id, payload.remark, _request_id(request))
        data = {"id": order.id, "remark": order.remark}
    return ok(data, "Remark updated")


@send_router.delete("/{order_id}")
def void_send_order(order_id: int, request: Request,
                    principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        order = service.void_send_order(db, principal, order_id, _request_id(request))
        data = {"id": order.id, "status": order.status}
    return ok(data, "Send order voided")


@send_router.put("/{order_id}/enable")
def enable_send_order(order_id: int, request: Request,
                      principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        order = service.enable_send_order(db, principal, order_id, _request_id(request))
        data = {"id": order.id, "status": order.status}
    return ok(data, "Send order enabled")


# ---- receive orders ----

@receive_router.get("")
def list_receive_orders(
    status: int | None = None,
    factoryId: int | None = None,
    processId: int | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    keyword: str | None = None,
    productCode: str | None = None,
    page: str | None = None,
    pageSize: str | None = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return _list(ReceiveOrder, principal, db, status, factoryId, processId,
                 startDate, endDate, keyword, productCode, page, pageSize)


@receive_router.get("/{order_id}")
def get_receive_order(order_id: int, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return ok(order_out(service.get_order(db, ReceiveOrder, principal.org_id, order_id), with_items=True))


@receive_router.post("", status_code=201)
def create_receive_order(payload: ReceiveOrderIn, request: Request,
                         principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        order, account = service.create_receive_order(db, principal, payload, _request_id(request))
        data = {"id": order.id, "orderNo": order.order_no, "factoryStatus": factory_status_out(account)}
    return ok(data, "Receive order created")


@receive_router.put("/{order_id}")
def update_receive_order(order_id: int, principal: Principal = Depends(get_principal)):
    raise EditDisabled(orderId=order_id)


@receive_router.delete("/{order_id}")
def void_receive_order(order_id: int, request: Request,
                       principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        order, account = service.void_receive_order(db, principal, order_id, _request_id(request))
        data = {"id": order.id, "status": order.status, "factoryStatus": factory_status_out(account)}
    return ok(data, "Receive order voided")


@receive_router.put("/{order_id}/enable")
def enable_receive_order(order_id: int, request: Request,
                         principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        order, account = service.enable_receive_order(db, principal, order_id, _request_id(request))
        data = {"id": order.id, "status": order.status, "factoryStatus": factory_status_out(account)}
    return ok(data, "Receive order enabled")
