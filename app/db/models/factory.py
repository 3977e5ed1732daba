"""
MODULE: FACTORY ACCOUNTS
Outsourcing factories and the per-factory money account (balance / debt)
plus its append-only journal.
"""

from __future__ import annotations

from decimal import Decimal

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasOrg, STATUS_ACTIVE
from sqlalchemy import String, Integer, Numeric, ForeignKey, JSON, Index, Text
from sqlalchemy.orm import Mapped, mapped_column


class Factory(Base, HasId, HasCreatedAt, HasOrg):
    __tablename__ = "factories"

    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    contact_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(String(256), nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    processes: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)

    # Credit the org holds with the factory / fees the org still owes it.
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    debt: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    __table_args__ = (Index("uq_factories_org_name", "org_id", "name", unique=True),)


class FactoryLedgerEntry(Base, HasId, HasCreatedAt, HasOrg):
    """One row per account mutation. Never updated or deleted."""
    __tablename__ = "factory_ledger_entries"

    factory_id: Mapped[int] = mapped_column(ForeignKey("factories.id"), nullable=False, index=True)
    entry_type: Mapped[str] = mapped_column(String(32), nullable=False)
    # order_create|order_void|order_enable|payment_create|payment_void
    source: Mapped[str] = mapped_column(String(32), nullable=False)  # receive_order|direct_payment
    ref_no: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    debt_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    debt_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)


Index("ix_ledger_factory_time", FactoryLedgerEntry.factory_id, FactoryLedgerEntry.created_at)
