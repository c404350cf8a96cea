from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from schemas import Order
from services.session_service import SessionContext
from services.warehouse_allocation import build_stock_adjustment_sources


def _today() -> str:
    return date.today().isoformat()


def build_order_payload(order: Order, context: SessionContext, customer_id: str) -> Dict[str, Any]:
    items = [
        {
            "item_code": item.item_code,
            "qty": item.quantity,
            "uom": item.uom or context.default_uom,
            "rate": item.rate,
            "discount_percentage": item.discount_percentage,
            "warehouse": item.warehouse or context.default_warehouse,
        }
        for item in order.items
    ]
    payload: Dict[str, Any] = {
        "customer": customer_id,
        "posting_date": order.posting_date or _today(),
        "selling_price_list": context.price_list,
        "taxes_and_charges": context.taxes_template,
        "additional_discount_percentage": order.global_discount_percent,
        "items": items,
        "custom_stock_adjustment_sources": build_stock_adjustment_sources(
            order.items, context.default_uom
        ),
    }
    if order.po_no:
        payload["po_no"] = order.po_no
    if order.po_date:
        payload["po_date"] = order.po_date
    if order.internal_note:
        payload["custom_internal_note"] = order.internal_note
    if order.order_id:
        payload["sales_order_id"] = order.order_id
    return payload


def build_confirmation_payload(
    order_id: str, profile_name: str, mode_of_payment: str
) -> Dict[str, Any]:
    # confirmation never charges: payment is a separate entry
    return {
        "sales_order_id": order_id,
        "pos_profile": profile_name,
        "payments": [{"mode_of_payment": mode_of_payment, "amount": 0}],
    }


def build_payment_entry_payload(
    customer_id: str,
    invoice_number: str,
    amount: float,
    allocated_amount: float,
    mode_of_payment: str,
    posting_date: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "payment_type": "Receive",
        "party_type": "Customer",
        "party": customer_id,
        "posting_date": posting_date or _today(),
        "paid_amount": amount,
        "mode_of_payment": mode_of_payment,
        "references": [
            {
                "reference_doctype": "Sales Invoice",
                "reference_name": invoice_number,
                "allocated_amount": allocated_amount,
            }
        ],
    }


def build_return_payload(invoice_number: str, items: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    lines: List[Dict[str, Any]] = [
        {"item_code": entry["item_code"], "qty": entry["qty"]} for entry in items
    ]
    return {"original_invoice": invoice_number, "items": lines}
