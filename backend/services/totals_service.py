from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from schemas import Order, OrderItem, TotalsBreakdown

CENT = Decimal("0.01")
ROUNDING_STEP = Decimal("0.05")
HUNDRED = Decimal("100")


def _dec(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    return f"{_money(_dec(value)):.2f}"


def round_to_step(value: Any, step: Decimal = ROUNDING_STEP) -> Decimal:
    """Round half-up onto a grid of ``step`` (0.05 by default)."""
    units = (_dec(value) / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return _money(units * step)


def compute_totals(
    items: Iterable[OrderItem],
    global_discount_percent: Any = 0,
    tax_rate: Any = 0,
    rounding_enabled: bool = True,
) -> TotalsBreakdown:
    untaxed = Decimal("0")
    item_discount = Decimal("0")
    for item in items:
        line = _dec(item.quantity) * _dec(item.rate)
        untaxed += line
        item_discount += line * _dec(item.discount_percentage) / HUNDRED

    net = untaxed - item_discount
    global_discount = net * _dec(global_discount_percent) / HUNDRED
    net_after_global = net - global_discount
    tax = net_after_global * _dec(tax_rate) / HUNDRED
    raw_total = _money(net_after_global + tax)
    total = round_to_step(raw_total) if rounding_enabled else raw_total
    total = max(total, Decimal("0.00"))

    return TotalsBreakdown(
        untaxed=format_money(untaxed),
        item_discount=format_money(item_discount),
        global_discount=format_money(global_discount),
        tax=format_money(tax),
        rounding=format_money(total - raw_total),
        total=format_money(total),
        source="computed",
    )


def order_totals(order: Order) -> TotalsBreakdown:
    """Totals for an order, deferring to backend figures where they are authoritative."""
    breakdown = compute_totals(
        order.items,
        order.global_discount_percent,
        order.tax_rate,
        order.rounding_enabled,
    )
    if order.edited:
        return breakdown
    if order.is_confirmed and order.outstanding_amount is not None:
        return breakdown.model_copy(
            update={
                "total": format_money(max(_dec(order.outstanding_amount), Decimal("0"))),
                "source": "outstanding",
            }
        )
    if order.is_saved and order.server_total is not None:
        return breakdown.model_copy(
            update={
                "total": format_money(max(_dec(order.server_total), Decimal("0"))),
                "source": "server_total",
            }
        )
    return breakdown


def order_amount(order: Order) -> Decimal:
    return _dec(order_totals(order).total)
