from __future__ import annotations
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from app.core.errors import ValidationFailed

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

def _as_int(value: Any, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default

def page_window(page: Any, page_size: Any) -> tuple[int, int, int, int]:
    """(page, page_size, offset, limit); never lets raw input reach OFFSET/LIMIT."""
    p = max(_as_int(page, 1), 1)
    size = min(max(_as_int(page_size, DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    return p, size, (p - 1) * size, size

def paged(items: list, total: int, page: int, page_size: int) -> dict:
    return {"list": items, "total": total, "page": page, "pageSize": page_size}

def ok(data: Any = None, message: str | None = None) -> dict:
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body

def money(value: Any) -> str:
    return f"{Decimal(value or 0):.2f}"

def parse_day(value: str | None, field: str) -> date:
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a date in YYYY-MM-DD format")

def day_range(start: date, end: date) -> tuple[datetime, datetime]:
    """[start 00:00, end + 1 day 00:00) so the whole end day is included."""
    return datetime.combine(start, datetime.min.time()), datetime.combine(end + timedelta(days=1), datetime.min.time())
