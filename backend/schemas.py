from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from constants import FULLY_RETURNED_MARKERS

OrderStatus = Literal["draft", "confirmed", "paid"]
LifecycleState = Literal["unsaved", "draft", "edited", "confirmed", "paid"]
TotalSource = Literal["computed", "server_total", "outstanding"]


class WarehouseAllocation(BaseModel):
    warehouse: str
    available: Optional[float] = None
    allocated: float = Field(default=0, ge=0)
    selected: bool = True


class StockAdjustmentSource(BaseModel):
    item_code: str = ""
    source_warehouse: str = ""
    qty: float = 0
    uom: str = ""


class OrderItem(BaseModel):
    item_code: str
    item_name: Optional[str] = None
    quantity: float = Field(..., gt=0)
    rate: float = Field(default=0, ge=0)
    discount_percentage: float = Field(default=0, ge=0, le=100)
    uom: Optional[str] = None
    warehouse: Optional[str] = None
    warehouse_allocations: List[WarehouseAllocation] = []


class CustomerRef(BaseModel):
    name: Optional[str] = None
    customer_id: Optional[str] = None
    tax_id: Optional[str] = None
    mobile_no: Optional[str] = None
    email: Optional[str] = None


class LinkedInvoice(BaseModel):
    name: str
    status: Optional[str] = None
    outstanding_amount: Optional[float] = None
    grand_total: Optional[float] = None
    paid_amount: Optional[float] = None
    reverse_status: Optional[str] = None


class Order(BaseModel):
    order_id: Optional[str] = None
    customer: Optional[CustomerRef] = None
    items: List[OrderItem] = []
    global_discount_percent: float = Field(default=0, ge=0, le=100)
    tax_rate: float = Field(default=0, ge=0)
    rounding_enabled: bool = True
    status: OrderStatus = "draft"
    edited: bool = False
    docstatus: int = 0
    linked_invoices: List[LinkedInvoice] = []
    invoice_number: Optional[str] = None
    invoice_status: Optional[str] = None
    invoice_reverse_status: Optional[str] = None
    return_count: int = 0
    server_total: Optional[float] = None
    posting_date: Optional[str] = None
    po_no: Optional[str] = None
    po_date: Optional[str] = None
    internal_note: Optional[str] = None

    @property
    def is_saved(self) -> bool:
        return bool(self.order_id)

    @property
    def is_confirmed(self) -> bool:
        return self.docstatus == 1

    @property
    def outstanding_amount(self) -> Optional[float]:
        if not self.linked_invoices:
            return None
        return self.linked_invoices[0].outstanding_amount

    @property
    def is_fully_returned(self) -> bool:
        for value in (self.invoice_reverse_status, self.invoice_status):
            text = (value or "").strip().lower()
            if text and any(marker in text for marker in FULLY_RETURNED_MARKERS):
                return True
        return False

    @property
    def lifecycle_state(self) -> LifecycleState:
        if self.status in ("confirmed", "paid"):
            return self.status
        if not self.order_id:
            return "unsaved"
        return "edited" if self.edited else "draft"


class PaymentAttempt(BaseModel):
    mode_of_payment: str
    amount: float = Field(default=0, ge=0)
    posting_date: Optional[str] = None


class ReturnLine(BaseModel):
    item_code: str
    item_name: Optional[str] = None
    original_item_ref: Optional[str] = None
    original_qty: float = 0
    already_returned_qty: float = 0
    returnable_qty: float = 0
    requested_qty: float = 0
    selected: bool = False


class ReturnReceipt(BaseModel):
    return_invoice: Optional[str] = None
    pdf_url: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


class CustomerRecord(BaseModel):
    customer_id: str
    customer_name: Optional[str] = None
    tax_id: Optional[str] = None
    mobile_no: Optional[str] = None


class CustomerInsights(BaseModel):
    customer_id: str
    amount_due: float = 0
    total_orders: Optional[int] = None
    raw: Optional[Dict[str, Any]] = None


class WarehouseStock(BaseModel):
    warehouse: str
    available: float = 0


class Privileges(BaseModel):
    sales: bool = False
    billing: bool = False
    returns: bool = False


class PosProfile(BaseModel):
    name: str
    tax_rate: float = 0
    payment_modes: List[str] = []
    price_list: Optional[str] = None
    warehouse: Optional[str] = None
    currency: Optional[str] = None
    users: List[Dict[str, Any]] = []


class StockError(BaseModel):
    item_code: str
    message: str
    title: str = "Stock Error"
    indicator: str = "red"


class ValidationIssue(BaseModel):
    item_code: str
    message: str
    idx: Optional[int] = None


class GenericError(BaseModel):
    summary: str
    detail: str = ""
    title: str = "Error"


class ErrorReport(BaseModel):
    stock_errors: List[StockError] = []
    validation_errors: List[ValidationIssue] = []
    generic: Optional[GenericError] = None

    @property
    def has_structured(self) -> bool:
        return bool(self.stock_errors or self.validation_errors)


class ActionResult(BaseModel):
    action: str
    ok: bool
    skipped: bool = False
    tab_id: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[LifecycleState] = None
    message: Optional[str] = None
    stock_errors: List[StockError] = []
    validation_errors: List[ValidationIssue] = []
    error: Optional[GenericError] = None
    receipt: Optional[ReturnReceipt] = None


class TotalsBreakdown(BaseModel):
    untaxed: str
    item_discount: str
    global_discount: str
    tax: str
    rounding: str
    total: str
    source: TotalSource = "computed"


class PaymentPreview(BaseModel):
    order_amount: str
    amount_due: str
    amount_due_is_estimate: bool = True
    total_pending: str
    payment_status: str


class TabSummary(BaseModel):
    tab_id: str
    kind: Literal["new", "existing"]
    display_name: str
    state: LifecycleState
    order: Order
    in_flight: List[str] = []


class TabListResponse(BaseModel):
    active_tab_id: Optional[str]
    tabs: List[TabSummary]


class AddItemRequest(BaseModel):
    item_code: str
    item_name: Optional[str] = None
    quantity: float = Field(default=1, gt=0)
    rate: float = Field(default=0, ge=0)
    discount_percentage: float = Field(default=0, ge=0, le=100)
    uom: Optional[str] = None
    warehouse: Optional[str] = None


class UpdateItemRequest(BaseModel):
    quantity: Optional[float] = Field(default=None, gt=0)
    rate: Optional[float] = Field(default=None, ge=0)
    discount_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    uom: Optional[str] = None
    warehouse: Optional[str] = None


class SetCustomerRequest(BaseModel):
    name: str
    customer_id: Optional[str] = None
    tax_id: Optional[str] = None
    mobile_no: Optional[str] = None
    email: Optional[str] = None


class SetDiscountRequest(BaseModel):
    percent: float = Field(..., ge=0, le=100)


class SetRoundingRequest(BaseModel):
    enabled: bool


class SetPostingDateRequest(BaseModel):
    posting_date: Optional[str] = None


class SetOtherDetailsRequest(BaseModel):
    po_no: Optional[str] = None
    po_date: Optional[str] = None
    internal_note: Optional[str] = None


class ActiveCartResponse(BaseModel):
    tab_id: Optional[str] = None
    items: List[OrderItem] = []
    customer: Optional[CustomerRef] = None
    global_discount_percent: float = 0


class ConfirmRequest(BaseModel):
    mode_of_payment: Optional[str] = None


class PayRequest(BaseModel):
    mode_of_payment: Optional[str] = None
    amount: float = Field(..., ge=0)
    posting_date: Optional[str] = None
    confirm_first: bool = False


class AllocationInput(BaseModel):
    warehouse: str
    allocated: float = Field(default=0, ge=0)


class AssignAllocationRequest(BaseModel):
    allocations: List[AllocationInput]


class AllocationPlanResponse(BaseModel):
    item_code: str
    required_qty: float
    default_warehouse: Optional[str]
    default_warehouse_qty: float
    default_is_sufficient: bool
    shortage: float
    total_allocated: float
    is_sufficient: bool
    warehouses: List[WarehouseAllocation]


class ReturnSelectRequest(BaseModel):
    item_code: str
    selected: bool = True


class ReturnQuantityRequest(BaseModel):
    item_code: str
    qty: float
    commit: bool = False


class ReturnSessionResponse(BaseModel):
    invoice_number: Optional[str]
    lines: List[ReturnLine]


class ApiInfoResponse(BaseModel):
    backend_url: str
    user: Optional[str]
    pos_profile: Optional[str]
    privileges: Privileges
    payment_modes: List[str] = []
