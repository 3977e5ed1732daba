"""
Per-org running document numbers: F0001 (send orders), S0001 (receive
orders), P0001 (direct payments).

Numbers come from the doc_counters row for (org_id, prefix). The row is
bumped with a single UPDATE ... SET seq = seq + 1 inside the caller's
transaction, so the row lock is held until that transaction ends and two
writers can never read the same value.

A missing row is seeded from the highest number already issued under the
prefix (rows written before the counter table existed). Two writers can race
on that first insert; the loser rolls back its savepoint, sleeps a little
and tries again, at most MAX_ATTEMPTS times.
"""

from __future__ import annotations

import random
import re
import time

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import NumberingExhausted
from app.core.logging_config import get_logger
from app.db.models.counters import DocCounter
from app.db.models.orders import SendOrder, ReceiveOrder
from app.db.models.payments import FactoryPayment

logger = get_logger("sequences")

PREFIX_SEND_ORDER = "F"
PREFIX_RECEIVE_ORDER = "S"
PREFIX_PAYMENT = "P"

MAX_ATTEMPTS = 5

# Where each prefix's numbers were issued before doc_counters existed.
_LEGACY_COLUMNS = {
    PREFIX_SEND_ORDER: (SendOrder, "order_no"),
    PREFIX_RECEIVE_ORDER: (ReceiveOrder, "order_no"),
    PREFIX_PAYMENT: (FactoryPayment, "payment_no"),
}


def format_number(prefix: str, seq: int, width: int = 4) -> str:
    return f"{prefix}{str(seq).zfill(width)}"


def max_existing_number(db: Session, org_id: str, prefix: str) -> int:
    """Highest numeric suffix already issued as PREFIX#### in this org."""
    target = _LEGACY_COLUMNS.get(prefix)
    if target is None:
        return 0
    model, field = target
    col = getattr(model, field)
    pat = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    max_n = 0
    rows = db.execute(select(col).where(model.org_id == org_id, col.like(f"{prefix}%"))).all()
    for (code,) in rows:
        m = pat.match(code or "")
        if m:
            max_n = max(max_n, int(m.group(1)))
    return max_n


def _bump(db: Session, org_id: str, prefix: str) -> int | None:
    result = db.execute(
        update(DocCounter)
        .where(DocCounter.org_id == org_id, DocCounter.prefix == prefix)
        .values(seq=DocCounter.seq + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    return db.execute(
        select(DocCounter.seq).where(DocCounter.org_id == org_id, DocCounter.prefix == prefix)
    ).scalar_one()


def next_number(db: Session, org_id: str, prefix: str, width: int = 4) -> str:
    for attempt in range(1, MAX_ATTEMPTS + 1):
        seq = _bump(db, org_id, prefix)
        if seq is not None:
            return format_number(prefix, seq, width)

        seq = max_existing_number(db, org_id, prefix) + 1
        try:
            with db.begin_nested():
                db.add(DocCounter(org_id=org_id, prefix=prefix, seq=seq))
            return format_number(prefix, seq, width)
        except IntegrityError:
            logger.warning(
                "doc_counter_seed_conflict",
                extra={"org_id": org_id, "prefix": prefix, "attempt": attempt},
            )
            time.sleep(random.uniform(0.01, 0.05))

    logger.error("doc_counter_exhausted", extra={"org_id": org_id, "prefix": prefix})
    raise NumberingExhausted(f"Could not allocate a {prefix} number after {MAX_ATTEMPTS} attempts")
