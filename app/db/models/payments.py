from __future__ import annotations

from decimal import Decimal

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasOrg, STATUS_ACTIVE
from sqlalchemy import String, Integer, Numeric, ForeignKey, JSON, Index, Text
from sqlalchemy.orm import Mapped, mapped_column


class FactoryPayment(Base, HasId, HasCreatedAt, HasOrg):
    """Money paid to a factory.

    payment_no is either a P#### number (direct payment) or the order_no of the
    receive order that carried the payment (implicit payment).
    """
    __tablename__ = "factory_payments"

    payment_no: Mapped[str] = mapped_column(String(32), nullable=False)
    factory_id: Mapped[int] = mapped_column(ForeignKey("factories.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_urls: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False, index=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    __table_args__ = (Index("uq_factory_payments_org_no", "org_id", "payment_no", unique=True),)
