from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HasId:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class HasCreatedAt:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class HasOrg:
    # Every business row is scoped to one organization (tenant).
    org_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)


# Status flags shared by orders, payments and master data.
STATUS_ACTIVE = 1
STATUS_VOID = 0
