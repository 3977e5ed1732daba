"""
MODULE: SEND / RECEIVE ORDERS
Send orders dispatch goods to a factory; receive orders bring processed goods
back and carry the processing fee and any payment made on the spot.
"""

from __future__ import annotations

from decimal import Decimal

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasOrg, STATUS_ACTIVE
from sqlalchemy import String, Integer, Numeric, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship


class SendOrder(Base, HasId, HasCreatedAt, HasOrg):
    __tablename__ = "send_orders"

    order_no: Mapped[str] = mapped_column(String(32), nullable=False)
    factory_id: Mapped[int] = mapped_column(ForeignKey("factories.id"), nullable=False, index=True)
    process_id: Mapped[int] = mapped_column(ForeignKey("processes.id"), nullable=False)
    total_weight: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False, index=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    items: Mapped[list["SendOrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="SendOrderItem.id"
    )
    factory = relationship("Factory")
    process = relationship("Process")

    __table_args__ = (Index("uq_send_orders_org_no", "org_id", "order_no", unique=True),)


class SendOrderItem(Base, HasId):
    __tablename__ = "send_order_items"

    send_order_id: Mapped[int] = mapped_column(ForeignKey("send_orders.id"), nullable=False, index=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id"), nullable=True, index=True)
    product_no: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    color_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    size_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    order: Mapped[SendOrder] = relationship(back_populates="items")
    product = relationship("Product")


class ReceiveOrder(Base, HasId, HasCreatedAt, HasOrg):
    __tablename__ = "receive_orders"

    order_no: Mapped[str] = mapped_column(String(32), nullable=False)
    factory_id: Mapped[int] = mapped_column(ForeignKey("factories.id"), nullable=False, index=True)
    process_id: Mapped[int] = mapped_column(ForeignKey("processes.id"), nullable=False)
    total_weight: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False, index=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    items: Mapped[list["ReceiveOrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="ReceiveOrderItem.id"
    )
    factory = relationship("Factory")
    process = relationship("Process")

    __table_args__ = (Index("uq_receive_orders_org_no", "org_id", "order_no", unique=True),)


class ReceiveOrderItem(Base, HasId):
    __tablename__ = "receive_order_items"

    receive_order_id: Mapped[int] = mapped_column(ForeignKey("receive_orders.id"), nullable=False, index=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id"), nullable=True, index=True)
    product_no: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    color_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    size_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    order: Mapped[ReceiveOrder] = relationship(back_populates="items")
    product = relationship("Product")
