from __future__ import annotations

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, STATUS_ACTIVE
from sqlalchemy import String, Boolean, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

# Role ids as stored in users.role_id
ROLE_SUPER_ADMIN = 1
ROLE_BOSS = 2
ROLE_STAFF = 3
ROLE_SPECIALIST = 4


class Organization(Base, HasId, HasCreatedAt):
    __tablename__ = "organizations"

    org_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)


class User(Base, HasId, HasCreatedAt):
    __tablename__ = "users"

    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    real_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    role_id: Mapped[int] = mapped_column(Integer, nullable=False, default=ROLE_STAFF)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=STATUS_ACTIVE)

    __table_args__ = (
        Index("uq_users_org_username", "org_id", "username", unique=True),
    )
