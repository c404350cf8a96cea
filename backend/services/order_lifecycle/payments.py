from decimal import Decimal
from typing import Any, Optional

from constants import PAYMENT_STATUS_CREDIT, PAYMENT_STATUS_FULL, PAYMENT_STATUS_PARTIAL
from schemas import CustomerInsights, Order, PaymentPreview
from services.totals_service import format_money, order_amount


def _dec(value: Any) -> Decimal:
    return Decimal(str(value or 0))


def payment_status_label(amount: Any, total_pending: Any) -> str:
    paid = _dec(amount)
    if paid <= 0:
        return PAYMENT_STATUS_CREDIT
    if paid >= _dec(total_pending):
        return PAYMENT_STATUS_FULL
    return PAYMENT_STATUS_PARTIAL


def allocatable_amount(amount: Any, outstanding: Any) -> float:
    return float(min(_dec(amount), _dec(outstanding)))


def build_payment_preview(
    order: Order, insights: Optional[CustomerInsights], amount: Any
) -> PaymentPreview:
    this_order = order_amount(order)
    amount_due = _dec(insights.amount_due) if insights else Decimal("0")
    if order.is_confirmed:
        # customer-level due already contains this invoice's outstanding
        amount_due = max(amount_due - this_order, Decimal("0"))
    total_pending = this_order + amount_due
    return PaymentPreview(
        order_amount=format_money(this_order),
        amount_due=format_money(amount_due),
        amount_due_is_estimate=True,
        total_pending=format_money(total_pending),
        payment_status=payment_status_label(amount, total_pending),
    )
