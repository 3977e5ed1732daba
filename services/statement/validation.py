from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from app.core.logging_config import get_logger
from services.statement.engine import Statement, RECEIVE, ZERO, FEE_TOLERANCE, fixed

logger = get_logger("statement.check")

# Risk score added per finding.
_ERROR_WEIGHT = {"critical": 100, "high": 50, "medium": 20, "low": 5}
_WARNING_WEIGHT = {"high": 25, "medium": 10, "low": 2}

LARGE_ORDER_FLOOR = Decimal("1000")
LOW_PAYMENT_FLOOR = Decimal("100")


@dataclass
class Finding:
    code: str
    message: str
    severity: str
    details: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "severity": self.severity, "details": self.details}


@dataclass
class FinancialCheck:
    """Post-hoc sanity checks over a built statement.

    Findings are logged for operators; the client never sees them.
    """

    statement: Statement
    errors: list[Finding] = field(default_factory=list)
    warnings: list[Finding] = field(default_factory=list)
    total_checks: int = 0
    passed_checks: int = 0

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def risk_score(self) -> int:
        score = sum(_ERROR_WEIGHT.get(e.severity, 0) for e in self.errors)
        score += sum(_WARNING_WEIGHT.get(w.severity, 0) for w in self.warnings)
        return score

    @property
    def risk_level(self) -> str:
        score = self.risk_score
        if score >= 100:
            return "critical"
        if score >= 50:
            return "high"
        if score >= 20:
            return "medium"
        return "low"

    def _check(self, finding: Finding | None, *, error: bool = False) -> None:
        self.total_checks += 1
        if finding is None:
            self.passed_checks += 1
        elif error:
            self.errors.append(finding)
        else:
            self.warnings.append(finding)

    def _order_fees(self) -> dict[int, Decimal]:
        fees: dict[int, Decimal] = {}
        for line in self.statement.lines:
            if line.order_type == RECEIVE:
                fees.setdefault(line.order_id, line.order_fee)
        return fees

    def check_integrity(self) -> None:
        incomplete = [
            line.order_no for line in self.statement.lines
            if not line.order_id or not line.order_type
        ]
        self._check(
            Finding("INCOMPLETE_ITEMS", f"{len(incomplete)} incomplete line items", "medium", incomplete[:5])
            if incomplete else None
        )

    def check_arithmetic(self) -> None:
        st = self.statement
        calculated_fee = sum(self._order_fees().values(), ZERO)
        diff = abs(calculated_fee - st.total_fee)
        self._check(
            Finding("FEE_CALCULATION_ERROR", "Total fee does not match receive orders", "high",
                    {"calculated": fixed(calculated_fee, 2), "reported": fixed(st.total_fee, 2)})
            if diff > FEE_TOLERANCE else None,
            error=True,
        )

        unpaid = st.total_fee - st.paid_amount
        diff = abs(unpaid - st.unpaid_amount)
        self._check(
            Finding("UNPAID_CALCULATION_ERROR", "Unpaid amount does not match fee minus paid", "high",
                    {"calculated": fixed(unpaid, 2), "reported": fixed(st.unpaid_amount, 2)})
            if diff > FEE_TOLERANCE else None,
            error=True,
        )

        diff = abs(st.style_fee_total - st.total_fee)
        self._check(
            Finding("STYLE_FEE_MISMATCH", "Style fees do not add up to order fees", "medium",
                    {"styles": fixed(st.style_fee_total, 2), "orders": fixed(st.total_fee, 2)})
            if diff > FEE_TOLERANCE else None
        )

    def check_business_rules(self) -> None:
        st = self.statement
        negative = {k: fixed(v, 2) for k, v in (("totalFee", st.total_fee), ("paidAmount", st.paid_amount)) if v < ZERO}
        self._check(Finding("NEGATIVE_AMOUNTS", "Negative amounts found", "medium", negative) if negative else None)

        overpaid = st.paid_amount > st.total_fee * Decimal("1.1")
        self._check(
            Finding("OVERPAYMENT", "Paid amount well above total fee", "medium",
                    {"totalFee": fixed(st.total_fee, 2), "paidAmount": fixed(st.paid_amount, 2)})
            if overpaid else None
        )

        inconsistent = []
        first: dict[tuple[str, int], Any] = {}
        for line in st.lines:
            key = (line.order_type, line.order_id)
            sig = (line.order_no, line.order_date, line.order_fee)
            if first.setdefault(key, sig) != sig:
                inconsistent.append(f"{line.order_type}_{line.order_id}")
        self._check(
            Finding("INCONSISTENT_ORDERS", "Order header differs between its line items", "medium", inconsistent[:3])
            if inconsistent else None
        )

    def detect_anomalies(self) -> None:
        st = self.statement
        fees = list(self._order_fees().values())
        finding = None
        if fees:
            avg = sum(fees, ZERO) / len(fees)
            top = max(fees)
            if top > avg * 5 and top > LARGE_ORDER_FLOOR:
                finding = Finding("LARGE_AMOUNT_ANOMALY", "Unusually large receive order", "medium",
                                  {"maxAmount": fixed(top, 2), "avgAmount": fixed(avg, 2)})
        self._check(finding)

        finding = None
        if st.total_fee > ZERO:
            ratio = st.paid_amount / st.total_fee
            if ratio > Decimal("1.2"):
                finding = Finding("HIGH_PAYMENT_RATIO", "Payment ratio unusually high", "medium",
                                  {"paymentRatio": fixed(ratio * 100, 1) + "%"})
            elif ratio < Decimal("0.1") and st.total_fee > LOW_PAYMENT_FLOOR:
                finding = Finding("LOW_PAYMENT_RATIO", "Payment ratio unusually low", "low",
                                  {"paymentRatio": fixed(ratio * 100, 1) + "%"})
        self._check(finding)

    def run(self) -> "FinancialCheck":
        self.check_integrity()
        self.check_arithmetic()
        self.check_business_rules()
        self.detect_anomalies()
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "total_checks": self.total_checks,
            "passed_checks": self.passed_checks,
            "errors": [e.as_dict() for e in self.errors],
            "warnings": [w.as_dict() for w in self.warnings],
        }

    def log(self, **context: Any) -> None:
        fields = {**context, **self.as_dict()}
        if self.errors or self.warnings:
            logger.warning("financial_check", extra=fields)
        else:
            logger.info("financial_check", extra=fields)
