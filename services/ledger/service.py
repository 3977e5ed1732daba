from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.core.logging_config import get_logger
from app.db.models.factory import Factory, FactoryLedgerEntry
from services.ledger.settlement import AccountState, ZERO, settle, unsettle, to_money

logger = get_logger("ledger")

# entry_type
ORDER_CREATE = "order_create"
ORDER_VOID = "order_void"
ORDER_ENABLE = "order_enable"
PAYMENT_CREATE = "payment_create"
PAYMENT_VOID = "payment_void"

# source
SOURCE_RECEIVE_ORDER = "receive_order"
SOURCE_DIRECT_PAYMENT = "direct_payment"


def lock_factory(db: Session, org_id: str, factory_id: int) -> Factory:
    """Load the factory row FOR UPDATE; all account writers queue behind this lock."""
    factory = db.execute(
        select(Factory)
        .where(Factory.id == factory_id, Factory.org_id == org_id)
        .with_for_update()
    ).scalar_one_or_none()
    if factory is None:
        raise NotFound("Factory not found", factoryId=factory_id)
    return factory


def get_factory(db: Session, org_id: str, factory_id: int) -> Factory:
    factory = db.query(Factory).filter(Factory.id == factory_id, Factory.org_id == org_id).first()
    if factory is None:
        raise NotFound("Factory not found", factoryId=factory_id)
    return factory


def account_of(factory: Factory) -> AccountState:
    return AccountState(to_money(factory.balance), to_money(factory.debt))


class FactoryLedger:
    """Applies money events to a factory account inside the caller's transaction.

    Every call locks the factory row, runs the settlement step, writes the new
    balance/debt back and appends one factory_ledger_entries row.
    """

    def __init__(self, db: Session, org_id: str, user_id: int | None = None):
        self.db = db
        self.org_id = org_id
        self.user_id = user_id

    def apply(
        self,
        factory_id: int,
        *,
        fee: Decimal = ZERO,
        payment: Decimal = ZERO,
        entry_type: str,
        source: str,
        ref_no: str,
    ) -> AccountState:
        return self._post(factory_id, fee, payment, entry_type, source, ref_no, reverse=False)

    def reverse(
        self,
        factory_id: int,
        *,
        fee: Decimal = ZERO,
        payment: Decimal = ZERO,
        entry_type: str,
        source: str,
        ref_no: str,
    ) -> AccountState:
        return self._post(factory_id, fee, payment, entry_type, source, ref_no, reverse=True)

    def _post(self, factory_id, fee, payment, entry_type, source, ref_no, *, reverse: bool) -> AccountState:
        fee, payment = to_money(fee), to_money(payment)
        factory = lock_factory(self.db, self.org_id, factory_id)
        before = account_of(factory)
        after = unsettle(before, fee, payment) if reverse else settle(before, fee, payment)

        factory.balance = after.balance
        factory.debt = after.debt
        self.db.add(
            FactoryLedgerEntry(
                org_id=self.org_id,
                factory_id=factory.id,
                entry_type=entry_type,
                source=source,
                ref_no=ref_no,
                fee=fee,
                payment=payment,
                balance_before=before.balance,
                balance_after=after.balance,
                debt_before=before.debt,
                debt_after=after.debt,
                created_by=self.user_id,
            )
        )
        self.db.flush()

        fields = {
            "org_id": self.org_id,
            "factory_id": factory.id,
            "entry_type": entry_type,
            "source": source,
            "ref_no": ref_no,
            "fee": fee,
            "payment": payment,
            "balance_before": before.balance,
            "balance_after": after.balance,
            "debt_before": before.debt,
            "debt_after": after.debt,
        }
        logger.info("ledger_updated", extra=fields)
        if after.is_negative:
            # Unbounded factory debt is an accepted business state; record it only.
            logger.warning("ledger_negative_value", extra=fields)
        return after


def list_entries(db: Session, org_id: str, factory_id: int, *, offset: int, limit: int) -> tuple[list[FactoryLedgerEntry], int]:
    base = select(FactoryLedgerEntry).where(
        FactoryLedgerEntry.org_id == org_id, FactoryLedgerEntry.factory_id == factory_id
    )
    total = db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
    rows = db.execute(
        base.order_by(FactoryLedgerEntry.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), total
