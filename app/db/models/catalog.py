"""
Master data referenced by order line items: products (style numbers),
colors, sizes and processing steps. Only the columns the ledger and
statement read are modelled here.
"""

from __future__ import annotations

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasOrg, STATUS_ACTIVE
from sqlalchemy import String, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column


class Product(Base, HasId, HasCreatedAt, HasOrg):
    __tablename__ = "products"

    code: Mapped[str] = mapped_column(String(64), nullable=False)  # style number
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)

    __table_args__ = (Index("ix_products_org_code", "org_id", "code"),)


class Color(Base, HasId, HasCreatedAt, HasOrg):
    __tablename__ = "colors"

    code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)


class Size(Base, HasId, HasCreatedAt, HasOrg):
    __tablename__ = "sizes"

    code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)


class Process(Base, HasId, HasCreatedAt, HasOrg):
    __tablename__ = "processes"

    name: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)
