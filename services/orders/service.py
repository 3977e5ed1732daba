"""
Send / receive order lifecycle.

    create  -> active
    active  -> void     (DELETE)
    void    -> active   (enable)

Each transition runs inside the caller's transaction and, for receive
orders, moves the factory account and the order's implicit payment row
together with the order status. Send orders carry no money: they get a
number, org checks and status changes, never a ledger entry.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app.core.audit import audit
from app.core.errors import NotFound, ValidationFailed, InvalidStateTransition
from app.core.logging_config import get_logger
from app.core.security import Principal, enforce_org
from app.db.models.catalog import Process, Product
from app.db.models.common import STATUS_ACTIVE, STATUS_VOID
from app.db.models.factory import Factory
from app.db.models.orders import SendOrder, SendOrderItem, ReceiveOrder, ReceiveOrderItem
from app.db.sequences import next_number, PREFIX_SEND_ORDER, PREFIX_RECEIVE_ORDER
from services._crud import day_range
from services.ledger.service import (
    FactoryLedger, lock_factory,
    ORDER_CREATE, ORDER_VOID, ORDER_ENABLE, SOURCE_RECEIVE_ORDER,
)
from services.ledger.settlement import AccountState, ZERO, to_money
from services.orders.schemas import SendOrderIn, ReceiveOrderIn
from services.payments.service import record_implicit_payment, void_implicit_payment

logger = get_logger("orders")

FEE_TOLERANCE = Decimal("0.01")


def _audit(db: Session, principal: Principal, action: str, order, request_id: str | None, **payload) -> None:
    audit(
        db,
        actor=principal.username,
        action=action,
        entity_type=order.__tablename__,
        entity_id=str(order.id),
        payload={"order_no": order.order_no, "factory_id": order.factory_id, **payload},
        request_id=request_id,
        org_id=principal.org_id,
    )


def _check_process(db: Session, org_id: str, process_id: int) -> Process:
    process = db.query(Process).filter(Process.id == process_id, Process.org_id == org_id).first()
    if process is None:
        raise ValidationFailed("Process does not belong to this organization", processId=process_id)
    return process


def _check_items(items) -> None:
    for i, item in enumerate(items):
        if item.weight < ZERO or item.quantity < 0 or item.fee < ZERO:
            raise ValidationFailed(f"items[{i}]: weight, quantity and fee must be >= 0")


def _totals(payload: SendOrderIn) -> tuple[Decimal, int]:
    weight = payload.total_weight
    if weight is None:
        weight = sum((item.weight for item in payload.items), ZERO)
    quantity = payload.total_quantity
    if quantity is None:
        quantity = sum(item.quantity for item in payload.items)
    if weight < ZERO or quantity < 0:
        raise ValidationFailed("totalWeight and totalQuantity must be >= 0")
    return to_money(weight), quantity


def _item_fields(item) -> dict:
    return dict(
        product_id=item.product_id,
        product_no=item.product_no,
        color_id=item.color_id,
        color_code=item.color_code,
        size_id=item.size_id,
        size_code=item.size_code,
        weight=to_money(item.weight),
        quantity=item.quantity,
    )


def create_send_order(db: Session, principal: Principal, payload: SendOrderIn,
                      request_id: str | None = None) -> SendOrder:
    org_id = enforce_org(payload.org_id, principal)
    _check_items(payload.items)
    total_weight, total_quantity = _totals(payload)
    _check_process(db, org_id, payload.process_id)
    lock_factory(db, org_id, payload.factory_id)

    order = SendOrder(
        org_id=org_id,
        order_no=next_number(db, org_id, PREFIX_SEND_ORDER),
        factory_id=payload.factory_id,
        process_id=payload.process_id,
        total_weight=total_weight,
        total_quantity=total_quantity,
        remark=payload.remark,
        status=STATUS_ACTIVE,
        created_by=principal.user_id,
        items=[SendOrderItem(**_item_fields(item)) for item in payload.items],
    )
    db.add(order)
    db.flush()
    _audit(db, principal, "send_order.create", order, request_id, total_weight=total_weight)
    logger.info("send_order_created", extra={"org_id": org_id, "order_no": order.order_no})
    return order


def create_receive_order(db: Session, principal: Principal, payload: ReceiveOrderIn,
                         request_id: str | None = None) -> tuple[ReceiveOrder, AccountState]:
    org_id = enforce_org(payload.org_id, principal)
    _check_items(payload.items)
    total_weight, total_quantity = _totals(payload)

    item_fee_total = to_money(sum((item.fee for item in payload.items), ZERO))
    total_fee = item_fee_total if payload.total_fee is None else to_money(payload.total_fee)
    payment = to_money(payload.payment_amount)
    if total_fee < ZERO or payment < ZERO:
        raise ValidationFailed("totalFee and paymentAmount must be >= 0")
    if abs(total_fee - item_fee_total) > FEE_TOLERANCE:
        logger.warning(
            "receive_order_fee_mismatch",
            extra={"org_id": org_id, "total_fee": total_fee, "item_fee_total": item_fee_total},
        )

    _check_process(db, org_id, payload.process_id)
    lock_factory(db, org_id, payload.factory_id)

    order = ReceiveOrder(
        org_id=org_id,
        order_no=next_number(db, org_id, PREFIX_RECEIVE_ORDER),
        factory_id=payload.factory_id,
        process_id=payload.process_id,
        total_weight=total_weight,
        total_quantity=total_quantity,
        total_fee=total_fee,
        payment_amount=payment,
        payment_method=payload.payment_method,
        remark=payload.remark,
        status=STATUS_ACTIVE,
        created_by=principal.user_id,
        items=[ReceiveOrderItem(fee=to_money(item.fee), **_item_fields(item)) for item in payload.items],
    )
    db.add(order)
    db.flush()

    account = FactoryLedger(db, org_id, principal.user_id).apply(
        order.factory_id,
        fee=total_fee,
        payment=payment,
        entry_type=ORDER_CREATE,
        source=SOURCE_RECEIVE_ORDER,
        ref_no=order.order_no,
    )
    if payment > ZERO:
        record_implicit_payment(
            db,
            org_id=org_id,
            factory_id=order.factory_id,
            order_no=order.order_no,
            amount=payment,
            method=payload.payment_method,
            user_id=principal.user_id,
        )
    _audit(db, principal, "receive_order.create", order, request_id, total_fee=total_fee, payment_amount=payment)
    return order, account


def get_order(db: Session, model, org_id: str, order_id: int):
    order = (db.query(model)
             .options(selectinload(model.items))
             .filter(model.id == order_id, model.org_id == org_id)
             .first())
    if order is None:
        raise NotFound("Order not found", orderId=order_id)
    return order


def lock_order(db: Session, model, org_id: str, order_id: int):
    """Lock the order's factory, then re-read the order under that lock.

    A void or enable that raced this one and committed first is visible here,
    so the caller's status check sees the current value.
    """
    order = get_order(db, model, org_id, order_id)
    lock_factory(db, org_id, order.factory_id)
    return (db.query(model)
            .populate_existing()
            .options(selectinload(model.items))
            .with_for_update()
            .filter(model.id == order.id)
            .one())


def _set_status(order, status: int) -> None:
    if order.status == status:
        state = "voided" if status == STATUS_VOID else "active"
        raise InvalidStateTransition(f"Order {order.order_no} is already {state}")
    order.status = status


def void_send_order(db: Session, principal: Principal, order_id: int, request_id: str | None = None) -> SendOrder:
    order = get_order(db, SendOrder, principal.org_id, order_id)
    _set_status(order, STATUS_VOID)
    db.flush()
    _audit(db, principal, "send_order.void", order, request_id)
    return order


def enable_send_order(db: Session, principal: Principal, order_id: int, request_id: str | None = None) -> SendOrder:
    order = get_order(db, SendOrder, principal.org_id, order_id)
    _set_status(order, STATUS_ACTIVE)
    db.flush()
    _audit(db, principal, "send_order.enable", order, request_id)
    return order


def update_send_order_remark(db: Session, principal: Principal, order_id: int, remark: str | None,
                             request_id: str | None = None) -> SendOrder:
    order = get_order(db, SendOrder, principal.org_id, order_id)
    order.remark = remark
    db.flush()
    _audit(db, principal, "send_order.update_remark", order, request_id)
    return order


def void_receive_order(db: Session, principal: Principal, order_id: int,
                       request_id: str | None = None) -> tuple[ReceiveOrder, AccountState]:
    order = lock_order(db, ReceiveOrder, principal.org_id, order_id)
    _set_status(order, STATUS_VOID)

    account = FactoryLedger(db, principal.org_id, principal.user_id).reverse(
        order.factory_id,
        fee=order.total_fee,
        payment=order.payment_amount,
        entry_type=ORDER_VOID,
        source=SOURCE_RECEIVE_ORDER,
        ref_no=order.order_no,
    )
    if to_money(order.payment_amount) > ZERO:
        void_implicit_payment(db, org_id=principal.org_id, order_no=order.order_no)
    db.flush()
    _audit(db, principal, "receive_order.void", order, request_id)
    return order, account


def enable_receive_order(db: Session, principal: Principal, order_id: int,
                         request_id: str | None = None) -> tuple[ReceiveOrder, AccountState]:
    order = lock_order(db, ReceiveOrder, principal.org_id, order_id)
    _set_status(order, STATUS_ACTIVE)

    account = FactoryLedger(db, principal.org_id, principal.user_id).apply(
        order.factory_id,
        fee=order.total_fee,
        payment=order.payment_amount,
        entry_type=ORDER_ENABLE,
        source=SOURCE_RECEIVE_ORDER,
        ref_no=order.order_no,
    )
    if to_money(order.payment_amount) > ZERO:
        record_implicit_payment(
            db,
            org_id=principal.org_id,
            factory_id=order.factory_id,
            order_no=order.order_no,
            amount=order.payment_amount,
            method=order.payment_method,
            user_id=principal.user_id,
        )
    db.flush()
    _audit(db, principal, "receive_order.enable", order, request_id)
    return order, account


def list_orders(
    db: Session,
    model,
    principal: Principal,
    *,
    status: int | None = None,
    factory_id: int | None = None,
    process_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
    keyword: str | None = None,
    product_code: str | None = None,
    offset: int = 0,
    limit: int = 20,
):
    item_model = SendOrderItem if model is SendOrder else ReceiveOrderItem
    q = (db.query(model)
         .join(Factory, Factory.id == model.factory_id)
         .filter(model.org_id == principal.org_id))
    if principal.is_specialist:
        q = q.filter(model.created_by == principal.user_id)
    if status is not None:
        q = q.filter(model.status == status)
    if factory_id is not None:
        q = q.filter(model.factory_id == factory_id)
    if process_id is not None:
        q = q.filter(model.process_id == process_id)
    if start is not None:
        q = q.filter(model.created_at >= day_range(start, start)[0])
    if end is not None:
        q = q.filter(model.created_at < day_range(end, end)[1])
    if keyword:
        like = f"%{keyword}%"
        q = q.filter(or_(model.order_no.like(like), Factory.name.like(like)))
    if product_code:
        q = q.filter(model.items.any(
            item_model.product_id.in_(
                select(Product.id).where(Product.org_id == principal.org_id,
                                         Product.code.like(f"%{product_code}%"))
            )
        ))
    total = q.count()
    rows = (q.options(selectinload(model.items))
            .order_by(model.created_at.desc(), model.id.desc())
            .offset(offset).limit(limit).all())
    return rows, total

