from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationFailed
from app.db.models.catalog import Product, Process
from app.db.models.common import STATUS_ACTIVE
from app.db.models.factory import Factory
from app.db.models.orders import SendOrder, SendOrderItem, ReceiveOrder, ReceiveOrderItem
from app.db.models.payments import FactoryPayment
from services._crud import day_range
from services.statement.engine import (
    Statement, StatementLine, PaymentLine, build_statement, SEND, RECEIVE, UNKNOWN_PROCESS, ZERO,
)
from services.statement.validation import FinancialCheck


def resolve_factory(db: Session, org_id: str, *, factory_id=None, factory_name: str | None = None) -> Factory:
    q = db.query(Factory).filter(Factory.org_id == org_id)
    if factory_id not in (None, ""):
        try:
            q = q.filter(Factory.id == int(factory_id))
        except (TypeError, ValueError):
            raise ValidationFailed("factoryId must be an integer")
    elif factory_name:
        q = q.filter(Factory.name == factory_name)
    else:
        raise ValidationFailed("factoryName or factoryId is required")
    factory = q.first()
    if factory is None:
        raise NotFound("Factory not found")
    return factory


def _style_no(product: Product | None, item) -> str:
    if product is not None and product.code:
        return product.code
    return item.product_no or f"ID:{item.product_id if item.product_id is not None else 'N/A'}"


def _line(order_type: str, order, item, product: Product | None, process: Process | None) -> StatementLine:
    is_receive = order_type == RECEIVE
    return StatementLine(
        order_type=order_type,
        order_id=order.id,
        order_no=order.order_no,
        order_date=order.created_at.strftime("%Y-%m-%d"),
        process=process.name if process is not None else UNKNOWN_PROCESS,
        style_no=_style_no(product, item),
        product_id=item.product_id,
        product_name=product.name if product is not None else "",
        product_image=(product.image or "") if product is not None else "",
        color=item.color_code,
        size=item.size_code,
        quantity=int(item.quantity or 0),
        weight=Decimal(item.weight or 0),
        item_fee=Decimal(item.fee or 0) if is_receive else ZERO,
        order_fee=Decimal(order.total_fee or 0) if is_receive else ZERO,
        order_payment=Decimal(order.payment_amount or 0) if is_receive else ZERO,
        payment_method=order.payment_method if is_receive else None,
    )


def load_lines(db: Session, org_id: str, factory_id: int, start: date, end: date,
               product_id: int | None = None) -> list[StatementLine]:
    lo, hi = day_range(start, end)
    lines: list[StatementLine] = []
    for order_type, order_model, item_model, fk in (
        (SEND, SendOrder, SendOrderItem, SendOrderItem.send_order_id),
        (RECEIVE, ReceiveOrder, ReceiveOrderItem, ReceiveOrderItem.receive_order_id),
    ):
        q = (db.query(order_model, item_model, Product, Process)
             .join(item_model, fk == order_model.id)
             .outerjoin(Product, item_model.product_id == Product.id)
             .outerjoin(Process, order_model.process_id == Process.id)
             .filter(order_model.org_id == org_id,
                     order_model.factory_id == factory_id,
                     order_model.status == STATUS_ACTIVE,
                     order_model.created_at >= lo,
                     order_model.created_at < hi))
        if product_id is not None:
            q = q.filter(item_model.product_id == product_id)
        q = q.order_by(order_model.created_at, order_model.id, item_model.id)
        lines.extend(_line(order_type, order, item, product, process) for order, item, product, process in q.all())
    return lines


def load_payments(db: Session, org_id: str, factory_id: int, start: date, end: date) -> list[PaymentLine]:
    """Direct payment records in the window.

    Any record numbered like one of this factory's receive orders is left
    out, whatever that order's date or status: it is the order's own payment
    and is counted from the order side.
    """
    lo, hi = day_range(start, end)
    receive_nos = select(ReceiveOrder.order_no).where(
        ReceiveOrder.org_id == org_id, ReceiveOrder.factory_id == factory_id
    )
    rows = (db.query(FactoryPayment)
            .filter(FactoryPayment.org_id == org_id,
                    FactoryPayment.factory_id == factory_id,
                    FactoryPayment.status == STATUS_ACTIVE,
                    FactoryPayment.created_at >= lo,
                    FactoryPayment.created_at < hi,
                    FactoryPayment.payment_no.not_in(receive_nos))
            .order_by(FactoryPayment.created_at, FactoryPayment.id)
            .all())
    return [
        PaymentLine(payment_no=r.payment_no, amount=Decimal(r.amount), date=r.created_at.strftime("%Y-%m-%d"))
        for r in rows
    ]


def generate_statement(db: Session, org_id: str, factory: Factory, start: date, end: date,
                       product_id: int | None = None) -> Statement:
    lines = load_lines(db, org_id, factory.id, start, end, product_id)
    payments = load_payments(db, org_id, factory.id, start, end)
    statement = build_statement(lines, payments)
    FinancialCheck(statement).run().log(
        org_id=org_id,
        factory_id=factory.id,
        start_date=start.isoformat(),
        end_date=end.isoformat(),
    )
    return statement
