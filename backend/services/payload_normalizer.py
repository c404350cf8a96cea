"""Map backend payload shapes onto the canonical order types.

The backend answers the same logical value under several keys depending on
the endpoint and its version. Everything that inspects raw payloads lives
here so the rest of the service only ever sees ``schemas`` models.
"""

import json
from typing import Any, Dict, List, Optional

from schemas import (
    CustomerInsights,
    CustomerRecord,
    CustomerRef,
    LinkedInvoice,
    Order,
    OrderItem,
    PosProfile,
    ReturnLine,
    ReturnReceipt,
    WarehouseAllocation,
    WarehouseStock,
)


def _parse_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    try:
        if value is None or value == "":
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        if value is None or value == "":
            return default
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def unwrap_response(body: Any) -> Any:
    """Return the useful part of ``{"data": ...}`` / ``{"message": ...}`` bodies."""
    if not isinstance(body, dict):
        return body
    for key in ("data", "message"):
        value = body.get(key)
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(value.get("data"), (dict, list)):
            return value["data"]
        return value
    return body


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, list):
        return [entry for entry in value if isinstance(entry, dict)]
    if isinstance(value, dict):
        for key in ("items", "data", "results"):
            nested = value.get(key)
            if isinstance(nested, list):
                return [entry for entry in nested if isinstance(entry, dict)]
        return [value]
    return []


def extract_order_id(body: Any) -> Optional[str]:
    candidates: List[Dict[str, Any]] = []
    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, dict):
            nested = data.get("data")
            if isinstance(nested, dict):
                candidates.append(nested)
            candidates.append(data)
        message = body.get("message")
        if isinstance(message, dict):
            candidates.append(message)
        candidates.append(body)
    for candidate in candidates:
        order_id = (
            candidate.get("sales_order_id")
            or candidate.get("name")
            or candidate.get("order_id")
        )
        if order_id:
            return str(order_id)
    return None


def parse_server_messages(raw: Any) -> List[Dict[str, Any]]:
    """Decode ``_server_messages``: a JSON list whose entries are JSON strings."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return [{"message": raw}]
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    messages: List[Dict[str, Any]] = []
    for entry in raw:
        if isinstance(entry, str):
            try:
                decoded = json.loads(entry)
            except ValueError:
                decoded = entry
            entry = decoded
        if isinstance(entry, dict):
            messages.append(entry)
        elif entry is not None:
            messages.append({"message": str(entry)})
    return messages


def normalize_linked_invoices(value: Any) -> List[LinkedInvoice]:
    invoices: List[LinkedInvoice] = []
    for raw in _as_list(value):
        name = _text(raw.get("name") or raw.get("invoice") or raw.get("sales_invoice"))
        if not name:
            continue
        invoices.append(
            LinkedInvoice(
                name=name,
                status=_text(raw.get("status")),
                outstanding_amount=_parse_float(raw.get("outstanding_amount")),
                grand_total=_parse_float(raw.get("grand_total")),
                paid_amount=_parse_float(raw.get("paid_amount")),
                reverse_status=_text(
                    raw.get("custom_reverse_status") or raw.get("reverse_status")
                ),
            )
        )
    return invoices


def _group_allocations(sources: Any) -> Dict[str, List[WarehouseAllocation]]:
    grouped: Dict[str, List[WarehouseAllocation]] = {}
    for raw in _as_list(sources):
        item_code = _text(raw.get("item_code"))
        warehouse = _text(raw.get("source_warehouse") or raw.get("warehouse"))
        qty = _parse_float(raw.get("qty"), 0.0)
        if not item_code or not warehouse or qty <= 0:
            continue
        grouped.setdefault(item_code, []).append(
            WarehouseAllocation(warehouse=warehouse, allocated=qty, selected=True)
        )
    return grouped


def _format_item(raw: Dict[str, Any], allocations: Dict[str, List[WarehouseAllocation]]) -> Optional[OrderItem]:
    item_code = _text(raw.get("item_code") or raw.get("item_id"))
    quantity = _parse_float(raw.get("qty") or raw.get("quantity"), 0.0)
    if not item_code or quantity <= 0:
        return None
    discount = _parse_float(raw.get("discount_percentage"), 0.0)
    return OrderItem(
        item_code=item_code,
        item_name=_text(raw.get("item_name")),
        quantity=quantity,
        rate=max(_parse_float(raw.get("rate") or raw.get("price_list_rate"), 0.0), 0.0),
        discount_percentage=min(max(discount, 0.0), 100.0),
        uom=_text(raw.get("uom") or raw.get("stock_uom")),
        warehouse=_text(raw.get("warehouse")),
        warehouse_allocations=allocations.get(item_code, []),
    )


def server_total(raw: Dict[str, Any], invoices: List[LinkedInvoice]) -> Optional[float]:
    value = _parse_float(raw.get("final_total"))
    if value is None and invoices:
        value = invoices[0].grand_total
    if value is None:
        value = _parse_float(raw.get("grand_total"))
    return value


def normalize_order(body: Any) -> Order:
    raw = unwrap_response(body)
    if not isinstance(raw, dict):
        raise ValueError("Order details payload is not an object")

    invoices = normalize_linked_invoices(raw.get("linked_invoices"))
    allocations = _group_allocations(raw.get("custom_stock_adjustment_sources"))
    items = []
    for entry in _as_list(raw.get("items") or []):
        item = _format_item(entry, allocations)
        if item:
            items.append(item)

    docstatus = _parse_int(raw.get("docstatus"), 0)
    customer_id = _text(raw.get("customer"))
    customer_name = _text(raw.get("customer_name")) or customer_id
    discount = _parse_float(raw.get("additional_discount_percentage"), 0.0)

    fields: Dict[str, Any] = {
        "order_id": _text(
            raw.get("sales_order_id") or raw.get("name") or raw.get("order_id")
        ),
        "customer": CustomerRef(name=customer_name, customer_id=customer_id)
        if (customer_id or customer_name)
        else None,
        "items": items,
        "global_discount_percent": min(max(discount, 0.0), 100.0),
        "status": "confirmed" if docstatus == 1 else "draft",
        "docstatus": docstatus,
        "linked_invoices": invoices,
        "server_total": server_total(raw, invoices),
        "posting_date": _text(raw.get("posting_date") or raw.get("transaction_date")),
        "po_no": _text(raw.get("po_no")),
        "po_date": _text(raw.get("po_date")),
        "internal_note": _text(raw.get("custom_internal_note")),
    }
    if invoices:
        fields["invoice_number"] = invoices[0].name
        fields["invoice_status"] = invoices[0].status
        fields["invoice_reverse_status"] = invoices[0].reverse_status
    return_count = _parse_int(raw.get("return_count"))
    if return_count is not None:
        fields["return_count"] = return_count
    return Order(**fields)


def normalize_customers(body: Any) -> List[CustomerRecord]:
    records = []
    for raw in _as_list(unwrap_response(body)):
        customer_id = _text(raw.get("name") or raw.get("customer_id"))
        if not customer_id:
            continue
        records.append(
            CustomerRecord(
                customer_id=customer_id,
                customer_name=_text(raw.get("customer_name")),
                tax_id=_text(raw.get("tax_id")),
                mobile_no=_text(raw.get("mobile_no")),
            )
        )
    return records


def normalize_customer_insights(customer_id: str, body: Any) -> CustomerInsights:
    raw = unwrap_response(body)
    if not isinstance(raw, dict):
        raw = {}
    return CustomerInsights(
        customer_id=customer_id,
        amount_due=_parse_float(raw.get("amount_due"), 0.0),
        total_orders=_parse_int(raw.get("total_orders")),
        raw=raw,
    )


def normalize_warehouse_stock(body: Any, uom: Optional[str] = None) -> List[WarehouseStock]:
    stock = []
    wanted = (uom or "").lower()
    for raw in _as_list(unwrap_response(body)):
        warehouse = _text(raw.get("warehouse") or raw.get("name"))
        if not warehouse:
            continue
        quantities = raw.get("quantities")
        if isinstance(quantities, list):
            match = None
            for entry in quantities:
                if not isinstance(entry, dict):
                    continue
                if not wanted or str(entry.get("uom", "")).lower() == wanted:
                    match = entry
                    break
            available = _parse_float(match.get("qty") if match else None, 0.0)
        else:
            available = _parse_float(
                raw.get("actual_qty") or raw.get("available_qty") or raw.get("qty"), 0.0
            )
        stock.append(WarehouseStock(warehouse=warehouse, available=max(available, 0.0)))
    return stock


def normalize_return_lines(body: Any) -> List[ReturnLine]:
    lines = []
    for raw in _as_list(unwrap_response(body)):
        item_code = _text(raw.get("item_code"))
        if not item_code:
            continue
        original = _parse_float(raw.get("original_qty") or raw.get("qty"), 0.0)
        returned = _parse_float(
            raw.get("already_returned_qty") or raw.get("returned_qty"), 0.0
        )
        returnable = _parse_float(raw.get("returnable_qty"))
        if returnable is None:
            returnable = original - returned
        returnable = max(returnable, 0.0)
        lines.append(
            ReturnLine(
                item_code=item_code,
                item_name=_text(raw.get("item_name")),
                original_item_ref=_text(raw.get("so_detail") or raw.get("name")),
                original_qty=original,
                already_returned_qty=returned,
                returnable_qty=returnable,
                requested_qty=returnable,
            )
        )
    return lines


def normalize_return_receipt(body: Any) -> ReturnReceipt:
    raw = unwrap_response(body)
    if not isinstance(raw, dict):
        raw = {}
    return ReturnReceipt(
        return_invoice=_text(
            raw.get("return_invoice") or raw.get("credit_note") or raw.get("name")
        ),
        pdf_url=_text(raw.get("pdf_download_url")),
        raw=raw,
    )


def normalize_pos_profile(body: Any) -> PosProfile:
    raw = unwrap_response(body)
    if not isinstance(raw, dict) or not raw.get("name"):
        raise ValueError("POS profile payload has no name")
    modes: List[str] = []
    for payment in _as_list(raw.get("payments") or []):
        mode = _text(payment.get("mode_of_payment"))
        if mode and mode not in modes:
            modes.append(mode)
    users = raw.get("applicable_for_users")
    return PosProfile(
        name=str(raw["name"]),
        tax_rate=_parse_float(raw.get("custom_tax_rate"), 0.0),
        payment_modes=modes,
        price_list=_text(raw.get("selling_price_list")),
        warehouse=_text(raw.get("warehouse")),
        currency=_text(raw.get("currency")),
        users=[user for user in users if isinstance(user, dict)] if isinstance(users, list) else [],
    )
