"""
Factory statement (reconciliation) fold.

Input is the flat list of active order line items in the window plus the
factory payment records that survived the implicit-payment exclusion. The
fold is pure: no database access, so the same rows always give the same
statement.

Two levels of money are tracked on purpose:

* order level: a receive order's total_fee and payment_amount are counted
  once per order, however many line items it has;
* line level: each style number collects the fees of its own line items,
  and its share of each order's payment in proportion to those fees.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from app.core.logging_config import get_logger

logger = get_logger("statement")

ZERO = Decimal("0")
HUNDRED = Decimal("100")
FEE_TOLERANCE = Decimal("0.01")

SEND = "send"
RECEIVE = "receive"

UNKNOWN_PROCESS = "unknown"
UNPAID = "unpaid"


def fixed(value: Decimal, places: int) -> str:
    exp = Decimal(1).scaleb(-places)
    return str(Decimal(value).quantize(exp, rounding=ROUND_HALF_UP))


def loss_rate(send_weight: Decimal, receive_weight: Decimal) -> Decimal:
    if send_weight <= ZERO:
        return ZERO
    return (send_weight - receive_weight) / send_weight * HUNDRED


@dataclass
class StatementLine:
    order_type: str
    order_id: int
    order_no: str
    order_date: str
    process: str
    style_no: str
    product_id: int | None = None
    product_name: str = ""
    product_image: str = ""
    color: str | None = None
    size: str | None = None
    quantity: int = 0
    weight: Decimal = ZERO
    item_fee: Decimal = ZERO
    order_fee: Decimal = ZERO
    order_payment: Decimal = ZERO
    payment_method: str | None = None

    def as_dict(self) -> dict[str, Any]:
        is_receive = self.order_type == RECEIVE
        return {
            "orderType": self.order_type,
            "orderId": self.order_id,
            "orderNo": self.order_no,
            "orderDate": self.order_date,
            "orderProcess": self.process,
            "productId": self.product_id,
            "styleNo": self.style_no,
            "productName": self.product_name,
            "productImage": self.product_image,
            "itemColor": self.color,
            "itemSize": self.size,
            "itemQuantity": self.quantity,
            "itemWeight": fixed(self.weight, 1),
            "itemFee": fixed(self.item_fee, 2),
            "orderFee": fixed(self.order_fee, 2),
            "orderPaymentAmount": fixed(self.order_payment, 2),
            "orderPaymentMethod": self.payment_method,
            # Send orders never show a price.
            "priceDisplay": fixed(self.item_fee, 2) if is_receive and self.item_fee > ZERO else "",
        }


@dataclass
class PaymentLine:
    payment_no: str
    amount: Decimal
    date: str


@dataclass
class StyleTotals:
    style_no: str
    product_name: str
    product_image: str
    process: str
    send_quantity: int = 0
    send_weight: Decimal = ZERO
    receive_quantity: int = 0
    receive_weight: Decimal = ZERO
    fee: Decimal = ZERO
    payment_amount: Decimal = ZERO
    payment_method: str = UNPAID

    @property
    def is_empty(self) -> bool:
        return not (self.send_quantity or self.send_weight or self.receive_quantity or self.receive_weight
                    or self.fee or self.payment_amount)

    def as_dict(self) -> dict[str, Any]:
        return {
            "styleNo": self.style_no,
            "productName": self.product_name,
            "productImage": self.product_image,
            "process": self.process,
            "sendQuantity": self.send_quantity,
            "sendWeight": fixed(self.send_weight, 1),
            "receiveQuantity": self.receive_quantity,
            "receiveWeight": fixed(self.receive_weight, 1),
            "fee": fixed(self.fee, 2),
            "paymentAmount": fixed(self.payment_amount, 2),
            "paymentMethod": self.payment_method,
        }


@dataclass
class Statement:
    send_weight: Decimal = ZERO
    receive_weight: Decimal = ZERO
    total_fee: Decimal = ZERO
    paid_amount: Decimal = ZERO
    processes: dict[str, list[Decimal]] = field(default_factory=dict)
    styles: dict[str, StyleTotals] = field(default_factory=dict)
    lines: list[StatementLine] = field(default_factory=list)
    receive_payments: dict[str, Decimal] = field(default_factory=dict)
    payment_records: int = 0

    @property
    def unpaid_amount(self) -> Decimal:
        return self.total_fee - self.paid_amount

    @property
    def loss_rate(self) -> Decimal:
        return loss_rate(self.send_weight, self.receive_weight)

    def style_summary(self) -> list[StyleTotals]:
        return [s for s in self.styles.values() if not s.is_empty]

    @property
    def style_fee_total(self) -> Decimal:
        return sum((s.fee for s in self.style_summary()), ZERO)

    def to_payload(self, *, factory_name: str, start_date: str, end_date: str) -> dict[str, Any]:
        return {
            "factoryName": factory_name,
            "startDate": start_date,
            "endDate": end_date,
            "sendWeight": fixed(self.send_weight, 1),
            "receiveWeight": fixed(self.receive_weight, 1),
            "lossRate": fixed(self.loss_rate, 2),
            "totalFee": fixed(self.total_fee, 2),
            "paidAmount": fixed(self.paid_amount, 2),
            "unpaidAmount": fixed(self.unpaid_amount, 2),
            "processComparison": [
                {
                    "process": name,
                    "sendWeight": fixed(sent, 1),
                    "receiveWeight": fixed(received, 1),
                    "lossRate": fixed(loss_rate(sent, received), 2),
                }
                for name, (sent, received) in self.processes.items()
            ],
            "styleSummary": [s.as_dict() for s in self.style_summary()],
            "orders": [line.as_dict() for line in self.lines],
        }


def _style_for(st: Statement, line: StatementLine) -> StyleTotals:
    style = st.styles.get(line.style_no)
    if style is None:
        style = StyleTotals(
            style_no=line.style_no,
            product_name=line.product_name,
            product_image=line.product_image,
            process=line.process,
        )
        st.styles[line.style_no] = style
    return style


def _accumulate_lines(st: Statement, lines: list[StatementLine]) -> None:
    fee_counted: set[str] = set()
    for line in lines:
        st.lines.append(line)
        weights = st.processes.setdefault(line.process or UNKNOWN_PROCESS, [ZERO, ZERO])
        style = _style_for(st, line)

        if line.order_type == SEND:
            st.send_weight += line.weight
            weights[0] += line.weight
            style.send_quantity += line.quantity
            style.send_weight += line.weight
            continue

        st.receive_weight += line.weight
        weights[1] += line.weight
        key = f"receive_{line.order_id}"
        if key not in fee_counted:
            st.total_fee += line.order_fee
            fee_counted.add(key)

        style.receive_quantity += line.quantity
        style.receive_weight += line.weight
        style.fee += line.item_fee
        if line.payment_method and line.payment_method != UNPAID:
            style.payment_method = line.payment_method


def _merge_payments(st: Statement, receive_lines: list[StatementLine], payments: list[PaymentLine]) -> None:
    paid_keys: set[str] = set()

    for line in receive_lines:
        if line.order_payment <= ZERO or not line.order_no or line.order_no in st.receive_payments:
            continue
        st.receive_payments[line.order_no] = line.order_payment
        key = f"receive_{line.order_no}_{line.order_payment}_{line.order_date}"
        if key not in paid_keys:
            st.paid_amount += line.order_payment
            paid_keys.add(key)

    for record in payments:
        if record.amount <= ZERO:
            continue
        key = f"payment_{record.payment_no}_{record.amount}_{record.date}"
        if key not in paid_keys:
            st.paid_amount += record.amount
            paid_keys.add(key)
            st.payment_records += 1


def _distribute_payments(st: Statement, receive_lines: list[StatementLine]) -> None:
    by_order: dict[str, list[StatementLine]] = {}
    for line in receive_lines:
        by_order.setdefault(line.order_no, []).append(line)

    for order_no, amount in st.receive_payments.items():
        order_lines = by_order.get(order_no) or []
        if not order_lines:
            continue
        style_fees: dict[str, Decimal] = {}
        for line in order_lines:
            style_fees[line.style_no] = style_fees.get(line.style_no, ZERO) + line.item_fee

        order_fee = order_lines[0].order_fee
        for style_no, style_fee in style_fees.items():
            if order_fee > ZERO:
                share = amount * style_fee / order_fee
            else:
                share = amount / len(style_fees)
            st.styles[style_no].payment_amount += share


def build_statement(lines: list[StatementLine], payments: list[PaymentLine]) -> Statement:
    st = Statement()
    _accumulate_lines(st, lines)
    receive_lines = [line for line in lines if line.order_type == RECEIVE]
    _merge_payments(st, receive_lines, payments)
    _distribute_payments(st, receive_lines)

    diff = st.style_fee_total - st.total_fee
    if abs(diff) > FEE_TOLERANCE:
        logger.warning(
            "statement_fee_mismatch",
            extra={
                "style_fee_total": st.style_fee_total,
                "order_fee_total": st.total_fee,
                "difference": diff,
            },
        )
    return st
