import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Set

from constants import LOGGER_NAME
from schemas import (
    CustomerInsights,
    CustomerRef,
    Order,
    OrderItem,
    TabSummary,
    WarehouseAllocation,
)
from services.order_lifecycle.errors import (
    ActionNotAllowed,
    OrderLocked,
    TabLimitReached,
    TabNotFound,
)

logger = logging.getLogger(LOGGER_NAME)

LOCKED_STATUSES = ("confirmed", "paid")
ITEM_FIELDS = ("quantity", "rate", "discount_percentage", "uom", "warehouse")
CART_FIELDS = {
    "customer",
    "items",
    "global_discount_percent",
    "posting_date",
    "po_no",
    "po_date",
    "internal_note",
}


def _abbreviate_order_id(order_id: str) -> str:
    return f"#{order_id[-5:]}"


@dataclass
class Tab:
    tab_id: str
    kind: str
    display_name: str
    order: Order
    customer_insights: Optional[CustomerInsights] = None
    in_flight: Set[str] = field(default_factory=set)

    @property
    def is_locked(self) -> bool:
        return self.order.status in LOCKED_STATUSES

    def summary(self) -> TabSummary:
        return TabSummary(
            tab_id=self.tab_id,
            kind=self.kind,
            display_name=self.display_name,
            state=self.order.lifecycle_state,
            order=self.order,
            in_flight=sorted(self.in_flight),
        )


class TabStore:
    """In-memory open tabs of one operator session, one order per tab."""

    def __init__(self, max_open_tabs: int = 6, max_new_tabs: int = 4, tax_rate: float = 0.0):
        self.max_open_tabs = max_open_tabs
        self.max_new_tabs = max_new_tabs
        self.tax_rate = tax_rate
        self._tabs: Dict[str, Tab] = {}
        self._close_listeners: List[Callable[[Tab], None]] = []
        self.active_tab_id: Optional[str] = None

    # -- accessors ---------------------------------------------------------

    def get(self, tab_id: str) -> Tab:
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise TabNotFound(f"Tab {tab_id} is not open")
        return tab

    def list(self) -> List[Tab]:
        return list(self._tabs.values())

    def find_by_order_id(self, order_id: str) -> Optional[Tab]:
        for tab in self._tabs.values():
            if tab.order.order_id == order_id:
                return tab
        return None

    def set_active(self, tab_id: str) -> Tab:
        tab = self.get(tab_id)
        self.active_tab_id = tab_id
        return tab

    def current_tab(self) -> Optional[Tab]:
        if self.active_tab_id is None:
            return None
        return self._tabs.get(self.active_tab_id)

    def current_items(self) -> List[OrderItem]:
        tab = self.current_tab()
        return list(tab.order.items) if tab else []

    def current_customer(self) -> Optional[CustomerRef]:
        tab = self.current_tab()
        return tab.order.customer if tab else None

    def current_global_discount(self) -> float:
        tab = self.current_tab()
        return tab.order.global_discount_percent if tab else 0.0

    # -- tab lifecycle -----------------------------------------------------

    def _add(self, tab: Tab) -> Tab:
        self._tabs[tab.tab_id] = tab
        self.active_tab_id = tab.tab_id
        return tab

    def _new_tab_id(self) -> str:
        return f"tab-{uuid.uuid4().hex[:12]}"

    def _unsaved_count(self) -> int:
        return sum(1 for tab in self._tabs.values() if tab.kind == "new" and not tab.order.order_id)

    def _auto_close_safe_tab(self) -> bool:
        for tab in self._tabs.values():
            if tab.in_flight:
                continue
            if tab.order.status != "draft" or not tab.order.edited:
                logger.info("Auto-closing tab %s (%s) to make room", tab.tab_id, tab.display_name)
                self.close_tab(tab.tab_id)
                return True
        return False

    def _ensure_capacity(self) -> None:
        if len(self._tabs) >= self.max_open_tabs and not self._auto_close_safe_tab():
            raise TabLimitReached(
                f"You can keep only up to {self.max_open_tabs} orders open at a time"
            )

    def create_new_tab(self) -> Tab:
        self._ensure_capacity()
        unsaved = self._unsaved_count()
        if unsaved >= self.max_new_tabs:
            raise TabLimitReached(f"You can open only up to {self.max_new_tabs} New orders")
        order = Order(tax_rate=self.tax_rate, po_date=date.today().isoformat())
        return self._add(
            Tab(
                tab_id=self._new_tab_id(),
                kind="new",
                display_name=f"New {unsaved + 1}",
                order=order,
            )
        )

    def open_tab(self, order: Order) -> Tab:
        if not order.order_id:
            raise ValueError("Only saved orders can be opened")
        existing = self.find_by_order_id(order.order_id)
        if existing:
            self.active_tab_id = existing.tab_id
            return existing
        if len(self._tabs) >= self.max_open_tabs:
            raise TabLimitReached(
                f"You can keep only up to {self.max_open_tabs} orders open at a time"
            )
        snapshot = order.model_copy(
            update={
                "tax_rate": self.tax_rate,
                "edited": False,
                "status": "confirmed" if order.docstatus == 1 else "draft",
            }
        )
        return self._add(
            Tab(
                tab_id=self._new_tab_id(),
                kind="existing",
                display_name=_abbreviate_order_id(order.order_id),
                order=snapshot,
            )
        )

    def duplicate_tab(self, tab_id: str) -> Tab:
        source = self.get(tab_id).order
        tab = self.create_new_tab()
        tab.order = tab.order.model_copy(
            update={
                "customer": source.customer.model_copy() if source.customer else None,
                "items": [
                    item.model_copy(update={"warehouse_allocations": []})
                    for item in source.items
                ],
                "global_discount_percent": source.global_discount_percent,
                "edited": True,
            }
        )
        return tab

    def add_close_listener(self, listener: Callable[[Tab], None]) -> None:
        self._close_listeners.append(listener)

    def close_tab(self, tab_id: str) -> None:
        tab = self.get(tab_id)
        if tab.in_flight:
            raise ActionNotAllowed(
                f"Cannot close {tab.display_name} while {', '.join(sorted(tab.in_flight))} is running"
            )
        del self._tabs[tab_id]
        if self.active_tab_id == tab_id:
            self.active_tab_id = next(iter(self._tabs), None)
        for listener in self._close_listeners:
            listener(tab)

    # -- cart mutators (mark edited) ----------------------------------------

    def _editable(self, tab_id: str) -> Tab:
        tab = self.get(tab_id)
        if tab.is_locked:
            raise OrderLocked(f"Order {tab.order.order_id} is {tab.order.status} and can no longer be edited")
        return tab

    def _touch(self, tab: Tab, **changes: Any) -> Order:
        changes["edited"] = True
        tab.order = tab.order.model_copy(update=changes)
        return tab.order

    def _item_at(self, tab: Tab, index: int) -> OrderItem:
        if index < 0 or index >= len(tab.order.items):
            raise IndexError(f"No item at position {index}")
        return tab.order.items[index]

    def add_item(self, tab_id: str, item: OrderItem) -> Order:
        tab = self._editable(tab_id)
        return self._touch(tab, items=[*tab.order.items, item])

    def update_item(self, tab_id: str, index: int, **changes: Any) -> Order:
        tab = self._editable(tab_id)
        current = self._item_at(tab, index)
        updates = {key: value for key, value in changes.items() if key in ITEM_FIELDS and value is not None}
        data = current.model_dump()
        data.update(updates)
        if "quantity" in updates and updates["quantity"] != current.quantity:
            data["warehouse_allocations"] = []
        updated = OrderItem.model_validate(data)
        items = list(tab.order.items)
        items[index] = updated
        return self._touch(tab, items=items)

    def remove_item(self, tab_id: str, index: int) -> Order:
        tab = self._editable(tab_id)
        self._item_at(tab, index)
        items = list(tab.order.items)
        del items[index]
        return self._touch(tab, items=items)

    def set_item_allocations(
        self, tab_id: str, index: int, allocations: List[WarehouseAllocation]
    ) -> Order:
        tab = self._editable(tab_id)
        current = self._item_at(tab, index)
        items = list(tab.order.items)
        items[index] = current.model_copy(update={"warehouse_allocations": allocations})
        return self._touch(tab, items=items)

    def set_customer(self, tab_id: str, customer: CustomerRef) -> Order:
        tab = self._editable(tab_id)
        tab.customer_insights = None
        return self._touch(tab, customer=customer)

    def set_global_discount(self, tab_id: str, percent: float) -> Order:
        if percent < 0 or percent > 100:
            raise ValueError("Discount percentage must be between 0 and 100")
        tab = self._editable(tab_id)
        return self._touch(tab, global_discount_percent=percent)

    def set_posting_date(self, tab_id: str, posting_date: Optional[str]) -> Order:
        tab = self._editable(tab_id)
        return self._touch(tab, posting_date=posting_date)

    def set_other_details(
        self,
        tab_id: str,
        *,
        po_no: Optional[str] = None,
        po_date: Optional[str] = None,
        internal_note: Optional[str] = None,
    ) -> Order:
        tab = self._editable(tab_id)
        return self._touch(tab, po_no=po_no, po_date=po_date, internal_note=internal_note)

    def set_rounding(self, tab_id: str, enabled: bool) -> Order:
        tab = self.get(tab_id)
        tab.order = tab.order.model_copy(update={"rounding_enabled": enabled})
        return tab.order

    # -- orchestrator mutators ----------------------------------------------

    def set_order_id(self, tab_id: str, order_id: str) -> Order:
        tab = self.get(tab_id)
        tab.kind = "existing"
        tab.display_name = _abbreviate_order_id(order_id)
        tab.order = tab.order.model_copy(update={"order_id": order_id, "edited": False})
        return tab.order

    def set_status(self, tab_id: str, status: str) -> Order:
        tab = self.get(tab_id)
        tab.order = tab.order.model_copy(update={"status": status})
        return tab.order

    def set_edited(self, tab_id: str, edited: bool) -> Order:
        tab = self.get(tab_id)
        tab.order = tab.order.model_copy(update={"edited": edited})
        return tab.order

    def set_invoice(
        self,
        tab_id: str,
        invoice_number: Optional[str],
        status: Optional[str] = None,
        reverse_status: Optional[str] = None,
    ) -> Order:
        tab = self.get(tab_id)
        tab.order = tab.order.model_copy(
            update={
                "invoice_number": invoice_number,
                "invoice_status": status,
                "invoice_reverse_status": reverse_status,
            }
        )
        return tab.order

    def increment_return_count(self, tab_id: str) -> Order:
        tab = self.get(tab_id)
        tab.order = tab.order.model_copy(update={"return_count": tab.order.return_count + 1})
        return tab.order

    def set_customer_insights(self, tab_id: str, insights: Optional[CustomerInsights]) -> None:
        self.get(tab_id).customer_insights = insights

    def clear_customer_insights(self, tab_id: str) -> None:
        self.get(tab_id).customer_insights = None

    def apply_snapshot(self, tab_id: str, snapshot: Order) -> Order:
        """Merge a freshly fetched backend order into the tab.

        Cart contents are only replaced while the tab carries no local edits;
        backend-owned fields (docstatus, invoices, totals) always follow the
        snapshot.
        """
        tab = self.get(tab_id)
        current = tab.order
        status = "confirmed" if snapshot.docstatus == 1 else "draft"
        if status == "confirmed" and current.status == "paid":
            status = "paid"

        updates: Dict[str, Any] = {
            "order_id": snapshot.order_id or current.order_id,
            "status": status,
            "docstatus": snapshot.docstatus,
            "linked_invoices": snapshot.linked_invoices,
            "invoice_number": snapshot.invoice_number,
            "invoice_status": snapshot.invoice_status,
            "invoice_reverse_status": snapshot.invoice_reverse_status,
            "server_total": snapshot.server_total,
        }
        if "return_count" in snapshot.model_fields_set:
            updates["return_count"] = snapshot.return_count
        if not current.edited:
            updates.update(
                {
                    "customer": snapshot.customer or current.customer,
                    "items": snapshot.items,
                    "global_discount_percent": snapshot.global_discount_percent,
                    "posting_date": snapshot.posting_date,
                    "po_no": snapshot.po_no,
                    "po_date": snapshot.po_date,
                    "internal_note": snapshot.internal_note,
                }
            )
        tab.order = current.model_copy(update=updates)
        return tab.order
