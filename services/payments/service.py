from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.errors import NotFound, InvalidStateTransition, ConsistencyError, ValidationFailed
from app.core.logging_config import get_logger
from app.db.models.common import STATUS_ACTIVE, STATUS_VOID
from app.db.models.orders import ReceiveOrder
from app.db.models.payments import FactoryPayment
from app.db.sequences import next_number, PREFIX_PAYMENT
from services.ledger.service import FactoryLedger, lock_factory, PAYMENT_CREATE, PAYMENT_VOID, SOURCE_DIRECT_PAYMENT
from services.ledger.settlement import AccountState, ZERO, to_money

logger = get_logger("payments")


def find_payment(db: Session, org_id: str, payment_no: str) -> FactoryPayment | None:
    return (db.query(FactoryPayment)
            .filter(FactoryPayment.org_id == org_id, FactoryPayment.payment_no == payment_no)
            .first())


def is_implicit(db: Session, payment: FactoryPayment) -> bool:
    """True when the record was generated from a receive order's payment field."""
    return db.query(ReceiveOrder.id).filter(
        ReceiveOrder.org_id == payment.org_id, ReceiveOrder.order_no == payment.payment_no
    ).first() is not None


def record_implicit_payment(
    db: Session,
    *,
    org_id: str,
    factory_id: int,
    order_no: str,
    amount,
    method: str | None,
    user_id: int | None = None,
) -> FactoryPayment:
    """Make sure exactly one active payment row exists for a receive order.

    Calling it again for the same order is a no-op. A row voided together
    with its order is switched back on rather than inserted again.
    """
    amount = to_money(amount)
    row = find_payment(db, org_id, order_no)
    if row is not None and row.status == STATUS_ACTIVE:
        return row

    if row is not None:
        row.status = STATUS_ACTIVE
        row.amount = amount
        row.payment_method = method
        row.factory_id = factory_id
    else:
        row = FactoryPayment(
            org_id=org_id,
            payment_no=order_no,
            factory_id=factory_id,
            amount=amount,
            payment_method=method,
            remark=f"receive order {order_no}",
            image_urls=[],
            status=STATUS_ACTIVE,
            created_by=user_id,
        )
        db.add(row)
    db.flush()
    logger.info("implicit_payment_recorded", extra={"org_id": org_id, "order_no": order_no, "amount": amount})
    return row


def void_implicit_payment(db: Session, *, org_id: str, order_no: str) -> FactoryPayment | None:
    row = find_payment(db, org_id, order_no)
    if row is None or row.status != STATUS_ACTIVE:
        raise ConsistencyError(
            "No active payment record found for receive order", orderNo=order_no
        )
    row.status = STATUS_VOID
    db.flush()
    logger.info("implicit_payment_voided", extra={"org_id": org_id, "order_no": order_no})
    return row


def record_direct_payment(
    db: Session,
    *,
    org_id: str,
    factory_id: int,
    amount,
    method: str | None,
    remark: str | None = None,
    image_urls: list[str] | None = None,
    user_id: int | None = None,
) -> tuple[FactoryPayment, AccountState]:
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationFailed("Payment amount must be greater than 0")

    payment_no = next_number(db, org_id, PREFIX_PAYMENT)
    account = FactoryLedger(db, org_id, user_id).apply(
        factory_id,
        fee=ZERO,
        payment=amount,
        entry_type=PAYMENT_CREATE,
        source=SOURCE_DIRECT_PAYMENT,
        ref_no=payment_no,
    )
    row = FactoryPayment(
        org_id=org_id,
        payment_no=payment_no,
        factory_id=factory_id,
        amount=amount,
        payment_method=method,
        remark=remark,
        image_urls=list(image_urls or []),
        status=STATUS_ACTIVE,
        created_by=user_id,
    )
    db.add(row)
    db.flush()
    return row, account


def void_direct_payment(
    db: Session,
    *,
    org_id: str,
    factory_id: int,
    payment_id: int,
    user_id: int | None = None,
) -> tuple[FactoryPayment, AccountState]:
    lock_factory(db, org_id, factory_id)
    # Read under the factory lock so a void that committed first is seen.
    row = (db.query(FactoryPayment)
           .populate_existing()
           .with_for_update()
           .filter(FactoryPayment.id == payment_id,
                   FactoryPayment.org_id == org_id,
                   FactoryPayment.factory_id == factory_id)
           .first())
    if row is None:
        raise NotFound("Payment record not found", paymentId=payment_id)
    if row.status != STATUS_ACTIVE:
        raise InvalidStateTransition("Payment record is already voided")
    if is_implicit(db, row):
        raise InvalidStateTransition(
            "This payment belongs to a receive order; void the order instead", orderNo=row.payment_no
        )

    account = FactoryLedger(db, org_id, user_id).reverse(
        factory_id,
        fee=ZERO,
        payment=Decimal(row.amount),
        entry_type=PAYMENT_VOID,
        source=SOURCE_DIRECT_PAYMENT,
        ref_no=row.payment_no,
    )
    row.status = STATUS_VOID
    db.flush()
    return row, account


def list_payments(db: Session, org_id: str, factory_id: int, *, created_by: int | None = None,
                  offset: int = 0, limit: int = 20) -> tuple[list[FactoryPayment], int]:
    q = db.query(FactoryPayment).filter(FactoryPayment.org_id == org_id, FactoryPayment.factory_id == factory_id)
    if created_by is not None:
        q = q.filter(FactoryPayment.created_by == created_by)
    total = q.count()
    rows = q.order_by(FactoryPayment.id.desc()).offset(offset).limit(limit).all()
    return rows, total
