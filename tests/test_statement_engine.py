from decimal import Decimal

from services.statement.engine import (
    StatementLine, PaymentLine, build_statement, RECEIVE, SEND, UNPAID,
)
from services.statement.validation import FinancialCheck

D = Decimal


def receive(order_id, style, item_fee, *, order_fee, payment=D("0"), weight=D("10"), qty=10,
            method=None, date="2026-10-01", process="Dyeing"):
    return StatementLine(
        order_type=RECEIVE,
        order_id=order_id,
        order_no=f"S{order_id:04d}",
        order_date=date,
        process=process,
        style_no=style,
        quantity=qty,
        weight=weight,
        item_fee=item_fee,
        order_fee=order_fee,
        order_payment=payment,
        payment_method=method,
    )


def send(order_id, style, *, weight=D("10"), qty=10, process="Dyeing"):
    return StatementLine(
        order_type=SEND,
        order_id=order_id,
        order_no=f"F{order_id:04d}",
        order_date="2026-10-01",
        process=process,
        style_no=style,
        quantity=qty,
        weight=weight,
    )


def test_order_fee_counted_once_per_order_and_matches_style_fees():
    lines = [
        receive(1, "ST-001", D("60"), order_fee=D("100")),
        receive(1, "ST-002", D("40"), order_fee=D("100")),
        receive(2, "ST-001", D("25.50"), order_fee=D("25.50")),
    ]
    st = build_statement(lines, [])

    assert st.total_fee == D("125.50")
    assert abs(st.style_fee_total - st.total_fee) <= D("0.01")
    assert {s.style_no: s.fee for s in st.style_summary()} == {"ST-001": D("85.50"), "ST-002": D("40")}


def test_order_payment_counted_once_and_split_by_style_fee():
    lines = [
        receive(1, "ST-001", D("60"), order_fee=D("100"), payment=D("50"), method="cash"),
        receive(1, "ST-002", D("40"), order_fee=D("100"), payment=D("50"), method="cash"),
    ]
    st = build_statement(lines, [])

    assert st.paid_amount == D("50")
    assert st.unpaid_amount == D("50")
    styles = {s.style_no: s for s in st.style_summary()}
    assert styles["ST-001"].payment_amount == D("30")
    assert styles["ST-002"].payment_amount == D("20")
    assert styles["ST-001"].payment_method == "cash"


def test_zero_fee_order_splits_payment_equally():
    lines = [
        receive(1, "ST-001", D("0"), order_fee=D("0"), payment=D("30")),
        receive(1, "ST-002", D("0"), order_fee=D("0"), payment=D("30")),
    ]
    st = build_statement(lines, [])
    assert [s.payment_amount for s in st.style_summary()] == [D("15"), D("15")]


def test_direct_payments_are_added_and_exact_duplicates_ignored():
    lines = [receive(1, "ST-001", D("100"), order_fee=D("100"), payment=D("20"))]
    payments = [
        PaymentLine("P0001", D("30"), "2026-10-02"),
        PaymentLine("P0001", D("30"), "2026-10-02"),
        PaymentLine("P0002", D("0"), "2026-10-02"),
    ]
    st = build_statement(lines, payments)

    assert st.paid_amount == D("50")
    assert st.payment_records == 1
    # Direct payments are not attributed to any style.
    assert st.styles["ST-001"].payment_amount == D("20")


def test_weights_and_loss_rate_per_process():
    lines = [
        send(1, "ST-001", weight=D("100")),
        send(2, "ST-002", weight=D("50"), process="Printing"),
        receive(3, "ST-001", D("10"), order_fee=D("10"), weight=D("95")),
    ]
    payload = build_statement(lines, []).to_payload(factory_name="F", start_date="2026-10-01",
                                                     end_date="2026-10-31")

    assert payload["sendWeight"] == "150.0"
    assert payload["receiveWeight"] == "95.0"
    assert payload["lossRate"] == "36.67"
    by_process = {p["process"]: p for p in payload["processComparison"]}
    assert by_process["Dyeing"]["lossRate"] == "5.00"
    assert by_process["Printing"]["receiveWeight"] == "0.0"


def test_payload_formats_and_hides_send_prices():
    lines = [send(1, "ST-001"), receive(2, "ST-001", D("12.5"), order_fee=D("12.5"))]
    payload = build_statement(lines, []).to_payload(factory_name="F", start_date="a", end_date="b")

    send_row, receive_row = payload["orders"]
    assert send_row["priceDisplay"] == ""
    assert receive_row["priceDisplay"] == "12.50"
    assert payload["totalFee"] == "12.50"
    assert payload["styleSummary"][0]["paymentMethod"] == UNPAID


def test_style_without_movement_or_money_is_left_out_of_summary():
    lines = [receive(1, "ST-009", D("0"), order_fee=D("0"), weight=D("0"), qty=0)]
    st = build_statement(lines, [])
    assert st.style_summary() == []


def test_fee_only_line_keeps_its_style_in_summary(captured_logs):
    lines = [
        receive(1, "ST-001", D("60"), order_fee=D("100"), payment=D("50")),
        receive(1, "ST-002", D("40"), order_fee=D("100"), payment=D("50"), weight=D("0"), qty=0),
    ]
    st = build_statement(lines, [])

    styles = {s.style_no: s for s in st.style_summary()}
    assert set(styles) == {"ST-001", "ST-002"}
    assert st.style_fee_total == st.total_fee == D("100")
    assert styles["ST-002"].payment_amount == D("20")
    assert not [r for r in captured_logs() if r["message"] == "statement_fee_mismatch"]


def test_fee_mismatch_is_logged_not_raised(captured_logs):
    lines = [
        receive(1, "ST-001", D("60"), order_fee=D("100")),
        receive(1, "ST-002", D("30"), order_fee=D("100")),
    ]
    st = build_statement(lines, [])
    assert st.total_fee == D("100")

    warnings = [r for r in captured_logs() if r["message"] == "statement_fee_mismatch"]
    assert len(warnings) == 1
    assert warnings[0]["difference"] == "-10"


def test_financial_check_flags_style_mismatch_and_low_payment():
    lines = [
        receive(1, "ST-001", D("600"), order_fee=D("1000")),
        receive(1, "ST-002", D("300"), order_fee=D("1000")),
    ]
    check = FinancialCheck(build_statement(lines, [])).run()

    codes = {w.code for w in check.warnings}
    assert {"STYLE_FEE_MISMATCH", "LOW_PAYMENT_RATIO"} <= codes
    assert check.is_valid
    assert check.total_checks == check.passed_checks + len(check.warnings)
    assert check.risk_score == 12
    assert check.risk_level == "low"


def test_financial_check_passes_clean_statement(captured_logs):
    lines = [receive(1, "ST-001", D("100"), order_fee=D("100"), payment=D("100"))]
    check = FinancialCheck(build_statement(lines, [])).run()
    check.log(factory_id=1)

    assert check.errors == [] and check.warnings == []
    assert check.risk_level == "low"
    record = [r for r in captured_logs() if r["message"] == "financial_check"][-1]
    assert record["level"] == "INFO"
    assert record["factory_id"] == 1
