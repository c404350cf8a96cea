from typing import Any, Dict, List, Optional

from schemas import ReturnLine
from services.order_lifecycle.errors import ReturnSelectionError


class ReturnSession:
    """Returnable lines of one invoice, as fetched when the return dialog opens.

    Typed quantities are kept as drafts and only clamped to the returnable
    ceiling when committed (field blur) or submitted, so ``requested_qty``
    on a line never exceeds ``returnable_qty``.
    """

    def __init__(self, invoice_number: Optional[str], lines: List[ReturnLine]):
        self.invoice_number = invoice_number
        self.lines: Dict[str, ReturnLine] = {line.item_code: line for line in lines}
        self._drafts: Dict[str, float] = {}

    def _line(self, item_code: str) -> ReturnLine:
        line = self.lines.get(item_code)
        if line is None:
            raise ReturnSelectionError(f"Item {item_code} is not part of invoice {self.invoice_number}")
        return line

    def select(self, item_code: str, selected: bool = True) -> ReturnLine:
        line = self._line(item_code)
        if selected and line.returnable_qty <= 0:
            raise ReturnSelectionError("Cannot select item with zero returnable quantity")
        line.selected = selected
        if selected:
            line.requested_qty = line.returnable_qty
        self._drafts.pop(item_code, None)
        return line

    def set_quantity(self, item_code: str, qty: float, commit: bool = False) -> ReturnLine:
        line = self._line(item_code)
        if not commit:
            self._drafts[item_code] = qty
            return line
        self._drafts.pop(item_code, None)
        line.requested_qty = min(max(qty, 0.0), line.returnable_qty)
        return line

    def commit_drafts(self) -> None:
        for item_code, qty in list(self._drafts.items()):
            self.set_quantity(item_code, qty, commit=True)

    def build_items(self) -> List[Dict[str, Any]]:
        self.commit_drafts()
        items = [
            {"item_code": line.item_code, "qty": line.requested_qty}
            for line in self.lines.values()
            if line.selected and line.requested_qty > 0
        ]
        if not items:
            raise ReturnSelectionError("Select at least one item with a quantity to return")
        return items

    def snapshot(self) -> List[ReturnLine]:
        return [line.model_copy() for line in self.lines.values()]
