from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.errors import ValidationFailed
from app.core.security import Principal, get_principal
from app.db.session import get_db
from services._crud import ok, parse_day
from services.statement.service import resolve_factory, generate_statement

router = APIRouter(prefix="/statement", tags=["statement"])


def _product_filter(product_id: str | None) -> int | None:
    if product_id in (None, "", "null", "undefined"):
        return None
    try:
        return int(product_id)
    except ValueError:
        raise ValidationFailed("productId must be an integer")


@router.get("")
def get_statement(
    factoryName: str | None = None,
    factoryId: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    productId: str | None = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    if not (factoryName or factoryId) or not startDate or not endDate:
        raise ValidationFailed("factoryName, startDate and endDate are required")
    start = parse_day(startDate, "startDate")
    end = parse_day(endDate, "endDate")
    if start > end:
        raise ValidationFailed("startDate must not be after endDate")

    factory = resolve_factory(db, principal.org_id, factory_id=factoryId, factory_name=factoryName)
    statement = generate_statement(db, principal.org_id, factory, start, end, _product_filter(productId))
    return ok(statement.to_payload(factory_name=factory.name, start_date=startDate, end_date=endDate))
