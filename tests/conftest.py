import asyncio
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest

os.environ.setdefault("POS_BACKEND_URL", "http://erp.test")
os.environ.setdefault("ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""

from repositories.tab_store import TabStore  # noqa: E402
from schemas import (  # noqa: E402
    CustomerInsights,
    CustomerRecord,
    CustomerRef,
    LinkedInvoice,
    Order,
    OrderItem,
    PosProfile,
    Privileges,
    ReturnLine,
    ReturnReceipt,
    WarehouseStock,
)
from services.order_lifecycle.orchestrator import OrderLifecycleOrchestrator  # noqa: E402
from services.session_service import SessionContext  # noqa: E402


class FakeGateway:
    """Scripted stand-in for BackendGateway.

    ``gates`` block a named operation until the event is set, ``errors``
    make it raise, and ``detail_responses`` queues (gate, snapshot) pairs
    for successive ``get_order_details`` calls.
    """

    base_url = "http://erp.test/"

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.errors: Dict[str, Exception] = {}
        self.customers = [
            CustomerRecord(customer_id="CUST-0001", customer_name="Acme Traders"),
        ]
        self.amount_due = 0.0
        self.orders: Dict[str, Order] = {}
        self.order_ids = iter(f"SAL-ORD-2024-{n:05d}" for n in range(1, 100))
        self.confirm_sets_docstatus = True
        self.invoice_total = 207.0
        self.stock: Dict[str, List[WarehouseStock]] = {}
        self.return_lines: List[ReturnLine] = []
        self.detail_responses: List[Tuple[Optional[asyncio.Event], Any]] = []
        self.user: Optional[str] = "cashier@example.com"

    async def _enter(self, name: str, payload: Any = None) -> None:
        self.calls.append((name, payload))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        error = self.errors.get(name)
        if error is not None:
            raise error

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def payloads(self, name: str) -> List[Any]:
        return [payload for call, payload in self.calls if call == name]

    async def list_customers(self, search_term: str = "") -> List[CustomerRecord]:
        await self._enter("list_customers", search_term)
        return list(self.customers)

    async def customer_amount_insights(self, customer_id: str) -> CustomerInsights:
        await self._enter("customer_amount_insights", customer_id)
        return CustomerInsights(customer_id=customer_id, amount_due=self.amount_due)

    async def item_stock_warehouses(self, item_code: str, uom: Optional[str] = None) -> List[WarehouseStock]:
        await self._enter("item_stock_warehouses", item_code)
        return list(self.stock.get(item_code, []))

    def _store_order(self, order_id: str, payload: Dict[str, Any]) -> None:
        items = [
            OrderItem(
                item_code=entry["item_code"],
                quantity=entry["qty"],
                rate=entry["rate"],
                discount_percentage=entry["discount_percentage"],
                uom=entry["uom"],
                warehouse=entry["warehouse"],
            )
            for entry in payload["items"]
        ]
        self.orders[order_id] = Order(
            order_id=order_id,
            customer=CustomerRef(name=payload["customer"], customer_id=payload["customer"]),
            items=items,
            global_discount_percent=payload["additional_discount_percentage"],
            posting_date=payload["posting_date"],
        )

    async def create_order(self, payload: Dict[str, Any]) -> str:
        await self._enter("create_order", payload)
        order_id = next(self.order_ids)
        self._store_order(order_id, payload)
        return order_id

    async def edit_order(self, payload: Dict[str, Any]) -> str:
        await self._enter("edit_order", payload)
        order_id = payload["sales_order_id"]
        self._store_order(order_id, payload)
        return order_id

    async def get_order_details(self, order_id: str) -> Order:
        if self.detail_responses:
            gate, response = self.detail_responses.pop(0)
            self.calls.append(("get_order_details", order_id))
            if gate is not None:
                await gate.wait()
            if isinstance(response, Exception):
                raise response
            return response
        await self._enter("get_order_details", order_id)
        return self.orders[order_id].model_copy(deep=True)

    async def confirm_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("confirm_order", payload)
        order_id = payload["sales_order_id"]
        if self.confirm_sets_docstatus:
            order = self.orders[order_id]
            self.orders[order_id] = order.model_copy(
                update={
                    "docstatus": 1,
                    "linked_invoices": [
                        LinkedInvoice(
                            name="ACC-SINV-2024-00001",
                            status="Unpaid",
                            outstanding_amount=self.invoice_total,
                            grand_total=self.invoice_total,
                            paid_amount=0,
                        )
                    ],
                    "invoice_number": "ACC-SINV-2024-00001",
                    "invoice_status": "Unpaid",
                }
            )
        return {"data": {"sales_order_id": order_id}}

    async def create_payment_entry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("create_payment_entry", payload)
        for order_id, order in self.orders.items():
            if order.invoice_number == payload["references"][0]["reference_name"]:
                invoice = order.linked_invoices[0]
                remaining = max((invoice.outstanding_amount or 0) - payload["paid_amount"], 0)
                self.orders[order_id] = order.model_copy(
                    update={
                        "linked_invoices": [
                            invoice.model_copy(
                                update={
                                    "outstanding_amount": remaining,
                                    "status": "Paid" if remaining == 0 else "Partly Paid",
                                }
                            )
                        ],
                        "invoice_status": "Paid" if remaining == 0 else "Partly Paid",
                    }
                )
        return {"data": {"name": "ACC-PAY-2024-00001"}}

    async def get_return_availability(self, order_id: str) -> List[ReturnLine]:
        await self._enter("get_return_availability", order_id)
        return [line.model_copy() for line in self.return_lines]

    async def return_order(self, payload: Dict[str, Any]) -> ReturnReceipt:
        await self._enter("return_order", payload)
        return ReturnReceipt(return_invoice="ACC-SINV-RET-00001", pdf_url="/files/return.pdf")


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def profile() -> PosProfile:
    return PosProfile(name="Main POS", tax_rate=15, payment_modes=["Cash", "Card"])


@pytest.fixture
def context(profile: PosProfile) -> SessionContext:
    return SessionContext(
        user="cashier@example.com",
        profile=profile,
        privileges=Privileges(sales=True, billing=True, returns=True),
        default_warehouse="Stores - C",
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store(context: SessionContext) -> TabStore:
    return TabStore(max_open_tabs=6, max_new_tabs=4, tax_rate=context.tax_rate)


@pytest.fixture
def audit_log() -> List[Dict[str, Any]]:
    return []


@pytest.fixture
def orchestrator(gateway, context, store, audit_log) -> OrderLifecycleOrchestrator:
    async def record(tab_id, order_id, action, **fields):
        audit_log.append({"tab_id": tab_id, "order_id": order_id, "action": action, **fields})

    return OrderLifecycleOrchestrator(gateway, context, store, action_log=record)


@pytest.fixture
def cart_tab(orchestrator):
    tab = orchestrator.new_tab()
    orchestrator.store.set_customer(
        tab.tab_id, CustomerRef(name="Acme Traders", customer_id="CUST-0001")
    )
    orchestrator.store.add_item(
        tab.tab_id,
        OrderItem(item_code="ABC-123", quantity=2, rate=100, discount_percentage=10, uom="Nos"),
    )
    return tab
