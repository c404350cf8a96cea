import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from constants import LOGGER_NAME
from gateway import BackendError, BackendGateway
from repositories.tab_store import CART_FIELDS, Tab, TabStore
from schemas import (
    ActionResult,
    CustomerInsights,
    CustomerRef,
    GenericError,
    Order,
    PaymentAttempt,
    PaymentPreview,
    TotalsBreakdown,
    ValidationIssue,
)
from services.error_classifier import classify_error, summarize
from services.session_service import SessionContext
from services.totals_service import order_totals
from services.warehouse_allocation import WarehouseAllocationResolver, check_item_allocations

from .errors import (
    ActionNotAllowed,
    AllocationError,
    LifecycleError,
    ResolutionError,
    ReturnSelectionError,
)
from .payloads import (
    build_confirmation_payload,
    build_order_payload,
    build_payment_entry_payload,
    build_return_payload,
)
from .payments import allocatable_amount, build_payment_preview
from .returns import ReturnSession

logger = logging.getLogger(LOGGER_NAME)

ActionLog = Callable[..., Awaitable[None]]
ActionBody = Callable[[Tab], Awaitable[ActionResult]]


class OrderLifecycleOrchestrator:
    """Drives save, confirm, pay and return for the tabs of one session."""

    def __init__(
        self,
        gateway: BackendGateway,
        context: SessionContext,
        store: TabStore,
        action_log: Optional[ActionLog] = None,
    ) -> None:
        self.gateway = gateway
        self.context = context
        self.store = store
        self._action_log = action_log
        self._refresh_seq: Dict[str, int] = {}
        self._returns: Dict[str, ReturnSession] = {}
        store.add_close_listener(self._forget_tab)

    # -- tabs ----------------------------------------------------------------

    def new_tab(self) -> Tab:
        return self.store.create_new_tab()

    def duplicate_tab(self, tab_id: str) -> Tab:
        return self.store.duplicate_tab(tab_id)

    def close_tab(self, tab_id: str) -> None:
        self.store.close_tab(tab_id)

    def _forget_tab(self, tab: Tab) -> None:
        # runs for explicit and automatic closes alike
        self._returns.pop(tab.tab_id, None)
        order_id = tab.order.order_id
        if order_id and self.store.find_by_order_id(order_id) is None:
            self._refresh_seq.pop(order_id, None)

    async def open_order(self, order_id: str) -> Tab:
        existing = self.store.find_by_order_id(order_id)
        if existing:
            self.store.set_active(existing.tab_id)
            return existing
        order = await self.gateway.get_order_details(order_id)
        return self.store.open_tab(order)

    # -- derived figures -----------------------------------------------------

    def totals(self, tab_id: str) -> TotalsBreakdown:
        return order_totals(self.store.get(tab_id).order)

    async def customer_insights(self, tab_id: str) -> Optional[CustomerInsights]:
        tab = self.store.get(tab_id)
        if tab.customer_insights is not None:
            return tab.customer_insights
        try:
            customer_id = await self._resolve_customer_id(tab.order.customer)
            insights = await self.gateway.customer_amount_insights(customer_id)
        except (ResolutionError, BackendError) as exc:
            logger.warning("Customer insights unavailable for tab %s: %s", tab_id, exc)
            return None
        self.store.set_customer_insights(tab_id, insights)
        return insights

    async def payment_preview(self, tab_id: str, amount: float) -> PaymentPreview:
        insights = await self.customer_insights(tab_id)
        return build_payment_preview(self.store.get(tab_id).order, insights, amount)

    # -- warehouse allocation ------------------------------------------------

    async def allocation_session(self, tab_id: str, item_index: int) -> WarehouseAllocationResolver:
        tab = self.store.get(tab_id)
        if item_index < 0 or item_index >= len(tab.order.items):
            raise IndexError(f"No item at position {item_index}")
        item = tab.order.items[item_index]
        stock = await self.gateway.item_stock_warehouses(item.item_code, item.uom)
        default_warehouse = item.warehouse or self.context.default_warehouse or None
        default_available = next(
            (entry.available for entry in stock if entry.warehouse == default_warehouse), 0.0
        )
        return WarehouseAllocationResolver(
            item.item_code,
            item.quantity,
            default_warehouse,
            default_available,
            stock,
            existing=item.warehouse_allocations,
        )

    def assign_allocation(
        self, tab_id: str, item_index: int, resolver: WarehouseAllocationResolver
    ) -> Order:
        tab = self.store.get(tab_id)
        item = tab.order.items[item_index]
        if item.item_code != resolver.item_code or item.quantity != resolver.required_qty:
            raise AllocationError("Item changed while allocating warehouses", item.item_code)
        return self.store.set_item_allocations(tab_id, item_index, resolver.result())

    async def allocate(
        self, tab_id: str, item_index: int, allocations: Iterable[Any]
    ) -> Order:
        resolver = await self.allocation_session(tab_id, item_index)
        for entry in resolver.allocations:
            resolver.toggle(entry.warehouse, False)
        for entry in allocations:
            resolver.set_allocation(entry.warehouse, entry.allocated)
        return self.assign_allocation(tab_id, item_index, resolver)

    # -- refresh -------------------------------------------------------------

    async def _fetch_latest(self, tab_id: str) -> Tuple[Optional[Order], bool]:
        """Return ``(applied order, superseded)`` for one details request.

        ``superseded`` is true when a newer request for the same order was
        issued meanwhile and this response was dropped.
        """
        tab = self.store.get(tab_id)
        order_id = tab.order.order_id
        if not order_id:
            return None, False
        seq = self._refresh_seq.get(order_id, 0) + 1
        self._refresh_seq[order_id] = seq
        try:
            snapshot = await self.gateway.get_order_details(order_id)
        except (BackendError, ValueError) as exc:
            logger.warning("Refresh of order %s failed: %s", order_id, exc)
            return None, False
        if self._refresh_seq.get(order_id) != seq:
            logger.info("Discarding stale details for order %s (request %s)", order_id, seq)
            return None, True
        current = self.store.find_by_order_id(order_id)
        if current is None or current.tab_id != tab_id:
            return None, False
        return self.store.apply_snapshot(tab_id, snapshot), False

    async def refresh_order(self, tab_id: str) -> Optional[Order]:
        """Re-fetch canonical order details; only the newest request may apply."""
        order, _ = await self._fetch_latest(tab_id)
        return order

    async def refresh(self, tab_id: str) -> ActionResult:
        order, superseded = await self._fetch_latest(tab_id)
        tab = self.store.get(tab_id)
        if superseded:
            return self._result(
                tab, "refresh", ok=True, skipped=True, message="A newer refresh replaced this one"
            )
        if order is None and tab.order.order_id:
            return self._result(tab, "refresh", ok=False, message="Order details could not be refreshed")
        return self._result(tab, "refresh", ok=True)

    # -- action plumbing -----------------------------------------------------

    def _result(self, tab: Tab, action: str, **fields: Any) -> ActionResult:
        return ActionResult(
            action=action,
            tab_id=tab.tab_id,
            order_id=tab.order.order_id,
            status=tab.order.lifecycle_state,
            **fields,
        )

    async def _run(self, tab_id: str, action: str, body: ActionBody) -> ActionResult:
        tab = self.store.get(tab_id)
        if tab.in_flight:
            logger.info(
                "Ignoring %s on tab %s: %s already in progress",
                action,
                tab_id,
                ", ".join(sorted(tab.in_flight)),
            )
            return self._result(
                tab, action, ok=False, skipped=True, message=f"{action} ignored while another action is running"
            )

        tab.in_flight.add(action)
        refresh = True
        try:
            try:
                result = await body(tab)
            except AllocationError as exc:
                refresh = False
                result = self._result(
                    tab,
                    action,
                    ok=False,
                    validation_errors=[
                        ValidationIssue(item_code=exc.item_code, message=str(exc), idx=exc.idx)
                    ],
                )
            except LifecycleError as exc:
                refresh = False
                result = self._result(tab, action, ok=False, error=summarize(str(exc)))
            except BackendError as exc:
                logger.warning("%s failed for tab %s: %s", action, tab_id, exc.message)
                report = classify_error(exc)
                result = self._result(
                    tab,
                    action,
                    ok=False,
                    stock_errors=report.stock_errors,
                    validation_errors=report.validation_errors,
                    error=None if report.has_structured else report.generic,
                )
            except Exception as exc:  # pragma: no cover - keep the session alive
                logger.exception("Unexpected failure during %s on tab %s", action, tab_id)
                result = self._result(tab, action, ok=False, error=summarize(str(exc) or repr(exc)))

            if refresh and tab.order.order_id:
                await self.refresh_order(tab_id)
        finally:
            tab.in_flight.discard(action)

        result = result.model_copy(
            update={"order_id": tab.order.order_id, "status": tab.order.lifecycle_state}
        )
        await self._audit(tab, result)
        return result

    async def _audit(self, tab: Tab, result: ActionResult) -> None:
        if self._action_log is None:
            return
        await self._action_log(
            tab.tab_id,
            result.order_id,
            result.action,
            user=self.context.user,
            response=result.model_dump(mode="json"),
            status="success" if result.ok else "failed",
        )

    def _require(self, action: str) -> None:
        if not self.context.can(action):
            raise ActionNotAllowed(f"Your POS profile does not allow {action}", privilege=True)

    def _payment_mode(self, requested: Optional[str]) -> str:
        mode = requested or self.context.default_payment_mode
        if not mode:
            raise ResolutionError("No mode of payment is configured for this POS profile")
        return mode

    async def _resolve_customer_id(self, customer: Optional[CustomerRef]) -> str:
        if customer and customer.customer_id:
            return customer.customer_id
        name = (customer.name if customer else None) or self.context.walk_in_customer
        records = await self.gateway.list_customers(name)
        for record in records:
            if record.customer_name == name or record.customer_id == name:
                return record.customer_id
        if name == self.context.walk_in_customer:
            return name
        raise ResolutionError(f'Customer "{name}" not found in system')

    # -- save ----------------------------------------------------------------

    async def save(self, tab_id: str) -> ActionResult:
        return await self._run(tab_id, "save", self._save)

    async def _save(self, tab: Tab) -> ActionResult:
        self._require("save")
        order = tab.order
        if tab.is_locked:
            raise ActionNotAllowed(f"Order {order.order_id} is {order.status} and cannot be saved")
        if order.is_saved and not order.edited:
            return self._result(tab, "save", ok=True, skipped=True, message="No unsaved changes")
        if not order.items:
            raise ActionNotAllowed("Add at least one item before saving")
        check_item_allocations(order.items)

        customer_id = await self._resolve_customer_id(order.customer)
        payload = build_order_payload(order, self.context, customer_id)
        if order.order_id:
            order_id = await self.gateway.edit_order(payload)
        else:
            order_id = await self.gateway.create_order(payload)

        changed_meanwhile = tab.order.model_dump(include=CART_FIELDS) != order.model_dump(include=CART_FIELDS)
        self.store.set_order_id(tab.tab_id, order_id)
        if changed_meanwhile:
            self.store.set_edited(tab.tab_id, True)
        logger.info("save order tab=%s order=%s", tab.tab_id, order_id)
        return self._result(tab, "save", ok=True, message=f"Order {order_id} saved")

    # -- confirm -------------------------------------------------------------

    def _check_confirmable(self, tab: Tab) -> None:
        order = tab.order
        if not order.order_id:
            raise ResolutionError("Save the order before confirming it")
        if order.edited:
            raise ActionNotAllowed("Save your changes before confirming")
        if order.status in ("confirmed", "paid") or order.is_confirmed:
            raise ActionNotAllowed(f"Order {order.order_id} is already confirmed")
        if not self.context.profile_name:
            raise ResolutionError("No POS profile is loaded for this session")

    async def _send_confirmation(self, tab: Tab, mode_of_payment: str) -> None:
        payload = build_confirmation_payload(
            tab.order.order_id, self.context.profile_name, mode_of_payment
        )
        await self.gateway.confirm_order(payload)
        logger.info("confirm order tab=%s order=%s", tab.tab_id, tab.order.order_id)

    async def confirm(self, tab_id: str, mode_of_payment: Optional[str] = None) -> ActionResult:
        async def body(tab: Tab) -> ActionResult:
            self._require("confirm")
            self._check_confirmable(tab)
            await self._send_confirmation(tab, self._payment_mode(mode_of_payment))
            await self.refresh_order(tab.tab_id)
            if not tab.order.is_confirmed:
                return self._result(
                    tab,
                    "confirm",
                    ok=False,
                    error=GenericError(summary="The backend did not confirm the order"),
                )
            return self._result(
                tab, "confirm", ok=True, message=f"Order {tab.order.order_id} confirmed"
            )

        return await self._run(tab_id, "confirm", body)

    # -- pay -----------------------------------------------------------------

    async def pay(
        self,
        tab_id: str,
        amount: float,
        mode_of_payment: Optional[str] = None,
        posting_date: Optional[str] = None,
        confirm_first: bool = False,
    ) -> ActionResult:
        async def body(tab: Tab) -> ActionResult:
            self._require("pay")
            attempt = PaymentAttempt(
                mode_of_payment=self._payment_mode(mode_of_payment),
                amount=amount,
                posting_date=posting_date,
            )
            was_confirmed = tab.order.status in ("confirmed", "paid") or tab.order.is_confirmed
            if not was_confirmed and not confirm_first:
                raise ActionNotAllowed("Only confirmed orders can be paid")
            if was_confirmed and attempt.amount <= 0:
                raise ActionNotAllowed("Payment amount must be greater than zero")
            if not was_confirmed:
                self._check_confirmable(tab)
            customer_id = await self._resolve_customer_id(tab.order.customer)

            if not was_confirmed:
                await self._send_confirmation(tab, attempt.mode_of_payment)
                await self.refresh_order(tab.tab_id)
                if not tab.order.is_confirmed:
                    return self._result(
                        tab,
                        "pay",
                        ok=False,
                        error=GenericError(summary="The backend did not confirm the order"),
                    )
                if attempt.amount <= 0:
                    self.store.set_status(tab.tab_id, "confirmed")
                    return self._result(
                        tab, "pay", ok=True, message=f"Order {tab.order.order_id} confirmed"
                    )
            return await self._submit_payment(tab, customer_id, attempt)

        return await self._run(tab_id, "pay", body)

    async def _submit_payment(self, tab: Tab, customer_id: str, attempt: PaymentAttempt) -> ActionResult:
        order = tab.order
        invoice = order.invoice_number
        if not invoice:
            raise ResolutionError(f"Order {order.order_id} has no linked invoice yet")
        outstanding = order.outstanding_amount
        if outstanding is None or outstanding <= 0:
            raise ActionNotAllowed(f"Invoice {invoice} has no outstanding amount")

        payload = build_payment_entry_payload(
            customer_id,
            invoice,
            attempt.amount,
            allocatable_amount(attempt.amount, outstanding),
            attempt.mode_of_payment,
            attempt.posting_date,
        )
        await self.gateway.create_payment_entry(payload)
        self.store.set_status(tab.tab_id, "paid")
        self.store.clear_customer_insights(tab.tab_id)
        logger.info(
            "payment entry tab=%s invoice=%s amount=%s mode=%s",
            tab.tab_id,
            invoice,
            attempt.amount,
            attempt.mode_of_payment,
        )
        return self._result(tab, "pay", ok=True, message=f"Payment recorded against {invoice}")

    # -- returns -------------------------------------------------------------

    def _check_returnable(self, tab: Tab) -> None:
        order = tab.order
        if order.status not in ("confirmed", "paid"):
            raise ActionNotAllowed("Only confirmed or paid orders can be returned")
        if order.is_fully_returned:
            raise ActionNotAllowed(f"Order {order.order_id} is already fully returned")

    async def open_return(self, tab_id: str) -> ReturnSession:
        tab = self.store.get(tab_id)
        self._require("return")
        self._check_returnable(tab)
        lines = await self.gateway.get_return_availability(tab.order.order_id)
        session = ReturnSession(tab.order.invoice_number, lines)
        self._returns[tab_id] = session
        return session

    def return_session(self, tab_id: str) -> ReturnSession:
        self.store.get(tab_id)
        session = self._returns.get(tab_id)
        if session is None:
            raise ReturnSelectionError("Open the return for this order first")
        return session

    def select_return_line(self, tab_id: str, item_code: str, selected: bool = True) -> ReturnSession:
        session = self.return_session(tab_id)
        session.select(item_code, selected)
        return session

    def set_return_quantity(
        self, tab_id: str, item_code: str, qty: float, commit: bool = False
    ) -> ReturnSession:
        session = self.return_session(tab_id)
        session.set_quantity(item_code, qty, commit=commit)
        return session

    async def submit_return(self, tab_id: str) -> ActionResult:
        async def body(tab: Tab) -> ActionResult:
            self._require("return")
            self._check_returnable(tab)
            session = self.return_session(tab.tab_id)
            if not session.invoice_number:
                raise ResolutionError(f"Order {tab.order.order_id} has no invoice to return against")
            items = session.build_items()
            receipt = await self.gateway.return_order(
                build_return_payload(session.invoice_number, items)
            )
            self.store.increment_return_count(tab.tab_id)
            self.store.clear_customer_insights(tab.tab_id)
            self._returns.pop(tab.tab_id, None)
            logger.info(
                "return order tab=%s invoice=%s lines=%s",
                tab.tab_id,
                session.invoice_number,
                len(items),
            )
            return self._result(
                tab,
                "return",
                ok=True,
                receipt=receipt,
                message=f"Return processed for {session.invoice_number}",
            )

        return await self._run(tab_id, "return", body)

    def open_tabs(self) -> List[Tab]:
        return self.store.list()
