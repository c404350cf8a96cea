from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from schemas import OrderItem, StockAdjustmentSource, WarehouseAllocation, WarehouseStock
from services.order_lifecycle.errors import AllocationError, OverAllocationError


def _dec(value: Any) -> Decimal:
    return Decimal(str(value or 0))


class WarehouseAllocationResolver:
    """Split one item's required quantity across warehouses."""

    def __init__(
        self,
        item_code: str,
        required_qty: float,
        default_warehouse: Optional[str],
        default_available: float,
        candidates: Iterable[WarehouseStock],
        existing: Optional[Iterable[WarehouseAllocation]] = None,
    ) -> None:
        if required_qty <= 0:
            raise AllocationError("Required quantity must be positive", item_code)
        self.item_code = item_code
        self.required_qty = float(required_qty)
        self.default_warehouse = default_warehouse
        self.default_available = max(float(default_available or 0), 0.0)

        self.allocations: List[WarehouseAllocation] = []
        if default_warehouse:
            self.allocations.append(
                WarehouseAllocation(
                    warehouse=default_warehouse,
                    available=self.default_available,
                    allocated=0,
                    selected=False,
                )
            )
        for stock in candidates:
            if stock.warehouse == default_warehouse:
                continue
            self.allocations.append(
                WarehouseAllocation(
                    warehouse=stock.warehouse,
                    available=max(stock.available, 0.0),
                    allocated=0,
                    selected=False,
                )
            )

        previous = [entry for entry in (existing or []) if entry.allocated > 0]
        if previous:
            for entry in previous:
                target = self._find(entry.warehouse, create=True)
                target.allocated = entry.allocated
                target.selected = True
        else:
            self._prefill_default()

    def _find(self, warehouse: str, create: bool = False) -> WarehouseAllocation:
        for allocation in self.allocations:
            if allocation.warehouse == warehouse:
                return allocation
        if create:
            allocation = WarehouseAllocation(warehouse=warehouse, available=0, selected=False)
            self.allocations.append(allocation)
            return allocation
        raise AllocationError(f"Unknown warehouse {warehouse}", self.item_code)

    def _prefill_default(self) -> None:
        if not self.default_warehouse:
            return
        default = self._find(self.default_warehouse)
        default.allocated = min(self.required_qty, default.available or 0)
        default.selected = True

    @property
    def total_allocated(self) -> float:
        total = sum(
            (_dec(entry.allocated) for entry in self.allocations if entry.selected),
            Decimal("0"),
        )
        return float(total)

    @property
    def total_available(self) -> float:
        return float(sum((_dec(entry.available) for entry in self.allocations), Decimal("0")))

    @property
    def shortage(self) -> float:
        return max(float(_dec(self.required_qty) - _dec(self.total_allocated)), 0.0)

    @property
    def default_is_sufficient(self) -> bool:
        return self.default_available >= self.required_qty

    def is_sufficient(self) -> bool:
        selected = [entry for entry in self.allocations if entry.selected]
        return bool(selected) and _dec(self.total_allocated) >= _dec(self.required_qty)

    def set_allocation(self, warehouse: str, qty: float) -> WarehouseAllocation:
        target = self._find(warehouse)
        if qty < 0:
            raise AllocationError("Allocated quantity cannot be negative", self.item_code)
        if qty > (target.available or 0):
            raise OverAllocationError(
                f"Cannot allocate {qty:g} from {warehouse}: only {target.available or 0:g} available",
                self.item_code,
            )
        target.allocated = qty
        target.selected = qty > 0 or target.selected
        return target

    def toggle(self, warehouse: str, selected: bool) -> WarehouseAllocation:
        target = self._find(warehouse)
        target.selected = selected
        if not selected:
            target.allocated = 0
        return target

    def greedy_fill(self) -> "WarehouseAllocationResolver":
        """Top up the shortage from the largest remaining stocks first."""
        for entry in sorted(self.allocations, key=lambda item: -(item.available or 0)):
            missing = _dec(self.shortage)
            if missing <= 0:
                break
            spare = _dec(entry.available) - _dec(entry.allocated)
            if spare <= 0:
                continue
            entry.allocated = float(_dec(entry.allocated) + min(spare, missing))
            entry.selected = True
        return self

    def validate(self) -> None:
        for entry in self.allocations:
            if entry.selected and entry.allocated > (entry.available or 0):
                raise OverAllocationError(
                    f"Allocation for {entry.warehouse} exceeds available stock",
                    self.item_code,
                )
        if not self.is_sufficient():
            raise AllocationError(
                f"Allocated {self.total_allocated:g} of {self.required_qty:g} required for {self.item_code}",
                self.item_code,
            )

    def result(self) -> List[WarehouseAllocation]:
        self.validate()
        return [
            entry.model_copy()
            for entry in self.allocations
            if entry.selected and entry.allocated > 0
        ]

    def plan(self) -> Dict[str, Any]:
        return {
            "item_code": self.item_code,
            "required_qty": self.required_qty,
            "default_warehouse": self.default_warehouse,
            "default_warehouse_qty": self.default_available,
            "default_is_sufficient": self.default_is_sufficient,
            "shortage": self.shortage,
            "total_allocated": self.total_allocated,
            "is_sufficient": self.is_sufficient(),
            "warehouses": [entry.model_copy() for entry in self.allocations],
        }


def check_item_allocations(items: Iterable[OrderItem]) -> None:
    """Split-sourced items must cover their quantity before submission."""
    for idx, item in enumerate(items, start=1):
        allocated = [entry for entry in item.warehouse_allocations if entry.allocated > 0]
        if not allocated:
            continue
        total = sum((_dec(entry.allocated) for entry in allocated), Decimal("0"))
        if total < _dec(item.quantity):
            raise AllocationError(
                f"Allocated {float(total):g} of {item.quantity:g} required",
                item.item_code,
                idx,
            )


def build_stock_adjustment_sources(
    items: Iterable[OrderItem], default_uom: str = ""
) -> List[Dict[str, Any]]:
    sources: List[StockAdjustmentSource] = []
    for item in items:
        allocated = [entry for entry in item.warehouse_allocations if entry.allocated > 0]
        if not allocated:
            sources.append(StockAdjustmentSource())
            continue
        for entry in allocated:
            sources.append(
                StockAdjustmentSource(
                    item_code=item.item_code,
                    source_warehouse=entry.warehouse,
                    qty=entry.allocated,
                    uom=item.uom or default_uom,
                )
            )
    if not sources:
        sources.append(StockAdjustmentSource())
    return [source.model_dump() for source in sources]
