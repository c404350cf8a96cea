from decimal import Decimal

import pytest

from schemas import LinkedInvoice, Order, OrderItem
from services.totals_service import compute_totals, format_money, order_totals, round_to_step


def _item(qty, rate, discount=0):
    return OrderItem(item_code="ITEM-1", quantity=qty, rate=rate, discount_percentage=discount)


def test_worked_example_with_item_discount_and_tax():
    totals = compute_totals([_item(2, 100, 10)], global_discount_percent=0, tax_rate=15)

    assert totals.untaxed == "200.00"
    assert totals.item_discount == "20.00"
    assert totals.global_discount == "0.00"
    assert totals.tax == "27.00"
    assert totals.total == "207.00"
    assert totals.rounding == "0.00"
    assert totals.source == "computed"


def test_global_discount_applies_after_item_discounts():
    totals = compute_totals([_item(1, 200, 10)], global_discount_percent=50, tax_rate=0)

    assert totals.global_discount == "90.00"
    assert totals.total == "90.00"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("10.02", "10.00"),
        ("10.025", "10.05"),
        ("10.03", "10.05"),
        ("10.07", "10.05"),
        ("10.075", "10.10"),
        ("0.01", "0.00"),
    ],
)
def test_round_to_step_is_half_up_on_the_005_grid(value, expected):
    assert f"{round_to_step(value):.2f}" == expected


@pytest.mark.parametrize(
    "items, tax",
    [
        ([(3, 33.33, 0)], 15),
        ([(1, 0.99, 0), (7, 12.49, 5)], 5),
        ([(2.5, 19.99, 12.5)], 0),
        ([(11, 3.17, 100)], 15),
    ],
)
def test_rounding_toggle_properties(items, tax):
    lines = [_item(*entry) for entry in items]
    plain = compute_totals(lines, tax_rate=tax, rounding_enabled=False)
    rounded = compute_totals(lines, tax_rate=tax, rounding_enabled=True)

    raw = Decimal(plain.total)
    total = Decimal(rounded.total)
    assert plain.rounding == "0.00"
    assert total >= 0
    assert total % Decimal("0.05") == 0
    assert abs(total - raw) <= Decimal("0.025")
    assert Decimal(rounded.rounding) == total - raw


def test_empty_cart_totals_zero():
    totals = compute_totals([], tax_rate=15)
    assert totals.total == "0.00"


def test_format_money_keeps_two_decimals():
    assert format_money(3) == "3.00"
    assert format_money("1.005") == "1.01"


def test_saved_unedited_order_uses_server_total():
    order = Order(order_id="SO-1", items=[_item(2, 100, 10)], tax_rate=15, server_total=206.95)

    totals = order_totals(order)

    assert totals.total == "206.95"
    assert totals.source == "server_total"


def test_edited_order_is_recomputed_locally():
    order = Order(
        order_id="SO-1",
        items=[_item(2, 100, 10)],
        tax_rate=15,
        server_total=150,
        edited=True,
    )

    assert order_totals(order).total == "207.00"
    assert order_totals(order).source == "computed"


def test_confirmed_order_uses_invoice_outstanding():
    order = Order(
        order_id="SO-1",
        items=[_item(2, 100, 10)],
        tax_rate=15,
        status="confirmed",
        docstatus=1,
        server_total=207,
        linked_invoices=[LinkedInvoice(name="INV-1", outstanding_amount=57.5, grand_total=207)],
    )

    totals = order_totals(order)

    assert totals.total == "57.50"
    assert totals.source == "outstanding"
