from __future__ import annotations

from app.db.base import Base
from app.db.models.common import HasId
from sqlalchemy import String, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column


class DocCounter(Base, HasId):
    """Per-org running number for one document prefix (F, S, P, ...)."""
    __tablename__ = "doc_counters"

    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    prefix: Mapped[str] = mapped_column(String(8), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("org_id", "prefix", name="uq_doc_counters_org_prefix"),)
