from datetime import date

import pytest

from repositories.tab_store import TabStore
from schemas import CustomerRef, LinkedInvoice, Order, OrderItem, WarehouseAllocation
from services.order_lifecycle.errors import ActionNotAllowed, OrderLocked, TabLimitReached, TabNotFound


def _item(code="ABC-123", quantity=2, rate=100):
    return OrderItem(item_code=code, quantity=quantity, rate=rate)


def _saved(order_id, docstatus=0):
    return Order(order_id=order_id, docstatus=docstatus, items=[_item()])


def test_new_tabs_are_numbered_and_dated():
    store = TabStore(tax_rate=15)

    first = store.create_new_tab()
    second = store.create_new_tab()

    assert first.display_name == "New 1"
    assert second.display_name == "New 2"
    assert first.order.po_date == date.today().isoformat()
    assert first.order.tax_rate == 15
    assert store.active_tab_id == second.tab_id


def test_new_unsaved_tab_limit():
    store = TabStore(max_open_tabs=6, max_new_tabs=2)
    for _ in range(2):
        store.add_item(store.create_new_tab().tab_id, _item())

    with pytest.raises(TabLimitReached):
        store.create_new_tab()


def test_full_store_auto_closes_a_safe_tab():
    store = TabStore(max_open_tabs=2, max_new_tabs=4)
    editing = store.create_new_tab()
    store.add_item(editing.tab_id, _item())
    confirmed = store.open_tab(_saved("SAL-ORD-2024-00010", docstatus=1))

    store.create_new_tab()

    ids = [tab.tab_id for tab in store.list()]
    assert confirmed.tab_id not in ids
    assert editing.tab_id in ids


def test_full_store_with_only_edited_drafts_refuses():
    store = TabStore(max_open_tabs=2, max_new_tabs=4)
    for _ in range(2):
        store.add_item(store.create_new_tab().tab_id, _item())

    with pytest.raises(TabLimitReached):
        store.create_new_tab()


def test_tab_with_action_in_flight_is_never_auto_closed():
    store = TabStore(max_open_tabs=1, max_new_tabs=4)
    busy = store.open_tab(_saved("SAL-ORD-2024-00011", docstatus=1))
    busy.in_flight.add("pay")

    with pytest.raises(TabLimitReached):
        store.create_new_tab()


def test_opening_same_order_reuses_tab():
    store = TabStore()
    first = store.open_tab(_saved("SAL-ORD-2024-00012"))
    store.create_new_tab()

    again = store.open_tab(_saved("SAL-ORD-2024-00012"))

    assert again is first
    assert first.display_name == "#00012"
    assert store.active_tab_id == first.tab_id


def test_close_active_tab_activates_first_remaining():
    store = TabStore()
    first = store.create_new_tab()
    store.create_new_tab()
    third = store.create_new_tab()

    store.close_tab(third.tab_id)

    assert store.active_tab_id == first.tab_id
    with pytest.raises(TabNotFound):
        store.get(third.tab_id)


def test_confirmed_order_cannot_be_edited():
    store = TabStore()
    tab = store.open_tab(_saved("SAL-ORD-2024-00013", docstatus=1))

    assert tab.order.status == "confirmed"
    with pytest.raises(OrderLocked):
        store.add_item(tab.tab_id, _item("NEW-1"))
    with pytest.raises(OrderLocked):
        store.set_customer(tab.tab_id, CustomerRef(name="Someone"))


def test_rounding_toggle_does_not_mark_edited():
    store = TabStore()
    tab = store.open_tab(_saved("SAL-ORD-2024-00014"))

    store.set_rounding(tab.tab_id, False)

    assert tab.order.rounding_enabled is False
    assert tab.order.edited is False


def test_quantity_change_clears_allocations():
    store = TabStore()
    tab = store.create_new_tab()
    store.add_item(tab.tab_id, _item())
    store.set_item_allocations(
        tab.tab_id, 0, [WarehouseAllocation(warehouse="Stores - C", allocated=2)]
    )

    store.update_item(tab.tab_id, 0, rate=120)
    assert tab.order.items[0].warehouse_allocations

    store.update_item(tab.tab_id, 0, quantity=3)
    assert tab.order.items[0].warehouse_allocations == []
    assert tab.order.items[0].rate == 120


def test_update_missing_item_raises_index_error():
    store = TabStore()
    tab = store.create_new_tab()

    with pytest.raises(IndexError):
        store.update_item(tab.tab_id, 0, quantity=1)


def test_global_discount_bounds():
    store = TabStore()
    tab = store.create_new_tab()

    with pytest.raises(ValueError):
        store.set_global_discount(tab.tab_id, 120)
    store.set_global_discount(tab.tab_id, 12.5)
    assert tab.order.global_discount_percent == 12.5
    assert tab.order.edited is True


def test_duplicate_copies_cart_without_allocations():
    store = TabStore()
    source = store.open_tab(_saved("SAL-ORD-2024-00015", docstatus=1))
    source.order = source.order.model_copy(
        update={
            "customer": CustomerRef(name="Acme Traders", customer_id="CUST-0001"),
            "items": [
                _item().model_copy(
                    update={"warehouse_allocations": [WarehouseAllocation(warehouse="Stores - C", allocated=2)]}
                )
            ],
        }
    )

    copy = store.duplicate_tab(source.tab_id)

    assert copy.kind == "new"
    assert copy.order.order_id is None
    assert copy.order.status == "draft"
    assert copy.order.edited is True
    assert copy.order.customer.customer_id == "CUST-0001"
    assert copy.order.items[0].warehouse_allocations == []


def test_set_order_id_renames_tab():
    store = TabStore()
    tab = store.create_new_tab()
    store.add_item(tab.tab_id, _item())

    store.set_order_id(tab.tab_id, "SAL-ORD-2024-00016")

    assert tab.kind == "existing"
    assert tab.display_name == "#00016"
    assert tab.order.lifecycle_state == "draft"


def test_snapshot_keeps_local_edits_but_follows_server_state():
    store = TabStore()
    tab = store.open_tab(_saved("SAL-ORD-2024-00017"))
    store.add_item(tab.tab_id, _item("LOCAL-1"))

    snapshot = Order(
        order_id="SAL-ORD-2024-00017",
        items=[_item("SERVER-1")],
        server_total=230,
        linked_invoices=[LinkedInvoice(name="ACC-SINV-2024-00009", outstanding_amount=230)],
    )
    store.apply_snapshot(tab.tab_id, snapshot)

    assert [item.item_code for item in tab.order.items] == ["ABC-123", "LOCAL-1"]
    assert tab.order.server_total == 230
    assert tab.order.outstanding_amount == 230


def test_snapshot_keeps_paid_status_while_confirmed():
    store = TabStore()
    tab = store.open_tab(_saved("SAL-ORD-2024-00018", docstatus=1))
    store.set_status(tab.tab_id, "paid")

    store.apply_snapshot(tab.tab_id, _saved("SAL-ORD-2024-00018", docstatus=1))

    assert tab.order.status == "paid"


def test_applying_same_snapshot_twice_is_idempotent():
    store = TabStore()
    tab = store.open_tab(_saved("SAL-ORD-2024-00019"))
    snapshot = _saved("SAL-ORD-2024-00019").model_copy(update={"server_total": 200})

    first = store.apply_snapshot(tab.tab_id, snapshot)
    second = store.apply_snapshot(tab.tab_id, snapshot)

    assert first == second


def test_return_count_kept_when_snapshot_omits_it():
    store = TabStore()
    tab = store.open_tab(_saved("SAL-ORD-2024-00020", docstatus=1))
    store.increment_return_count(tab.tab_id)

    store.apply_snapshot(tab.tab_id, _saved("SAL-ORD-2024-00020", docstatus=1))

    assert tab.order.return_count == 1


def test_tab_with_action_in_flight_cannot_be_closed():
    store = TabStore()
    busy = store.open_tab(_saved("SAL-ORD-2024-00017"))
    busy.in_flight.add("save")

    with pytest.raises(ActionNotAllowed):
        store.close_tab(busy.tab_id)
    assert store.get(busy.tab_id) is busy


def test_close_listeners_see_every_closed_tab():
    store = TabStore(max_open_tabs=1, max_new_tabs=4)
    closed = []
    store.add_close_listener(lambda tab: closed.append(tab.tab_id))
    confirmed = store.open_tab(_saved("SAL-ORD-2024-00018", docstatus=1))

    fresh = store.create_new_tab()
    store.close_tab(fresh.tab_id)

    assert closed == [confirmed.tab_id, fresh.tab_id]


def test_current_accessors_follow_active_tab():
    store = TabStore()
    assert store.current_tab() is None
    assert store.current_items() == []
    assert store.current_customer() is None
    assert store.current_global_discount() == 0

    tab = store.create_new_tab()
    store.add_item(tab.tab_id, _item())
    store.set_customer(tab.tab_id, CustomerRef(name="Acme Traders"))
    store.set_global_discount(tab.tab_id, 7.5)

    assert store.current_tab() is tab
    assert [item.item_code for item in store.current_items()] == ["ABC-123"]
    assert store.current_customer().name == "Acme Traders"
    assert store.current_global_discount() == 7.5


def test_posting_date_and_other_details_mark_saved_order_edited():
    store = TabStore()
    tab = store.open_tab(_saved("SAL-ORD-2024-00019"))

    store.set_posting_date(tab.tab_id, "2024-05-02")
    store.set_other_details(tab.tab_id, po_no="PO-9", internal_note="Fragile")

    assert tab.order.posting_date == "2024-05-02"
    assert tab.order.po_no == "PO-9"
    assert tab.order.internal_note == "Fragile"
    assert tab.order.lifecycle_state == "edited"
