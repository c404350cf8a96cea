from fastapi import APIRouter, Depends, Query, Response, status

from dependencies import get_orchestrator, http_errors
from schemas import (
    ActiveCartResponse,
    AddItemRequest,
    AllocationPlanResponse,
    AssignAllocationRequest,
    CustomerRef,
    OrderItem,
    PaymentPreview,
    SetCustomerRequest,
    SetDiscountRequest,
    SetOtherDetailsRequest,
    SetPostingDateRequest,
    SetRoundingRequest,
    TabListResponse,
    TabSummary,
    TotalsBreakdown,
    UpdateItemRequest,
)
from services.order_lifecycle_service import OrderLifecycleOrchestrator

router = APIRouter(prefix="/api/tabs", tags=["tabs"])


@router.get("", response_model=TabListResponse)
async def list_tabs(
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabListResponse:
    return TabListResponse(
        active_tab_id=orchestrator.store.active_tab_id,
        tabs=[tab.summary() for tab in orchestrator.open_tabs()],
    )


@router.post("", response_model=TabSummary, status_code=status.HTTP_201_CREATED)
async def create_tab(
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        return orchestrator.new_tab().summary()


@router.post("/open/{order_id}", response_model=TabSummary)
async def open_order_tab(
    order_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        tab = await orchestrator.open_order(order_id)
        return tab.summary()


@router.get("/active", response_model=ActiveCartResponse)
async def read_active_cart(
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ActiveCartResponse:
    store = orchestrator.store
    tab = store.current_tab()
    return ActiveCartResponse(
        tab_id=tab.tab_id if tab else None,
        items=store.current_items(),
        customer=store.current_customer(),
        global_discount_percent=store.current_global_discount(),
    )


@router.get("/{tab_id}", response_model=TabSummary)
async def read_tab(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        return orchestrator.store.set_active(tab_id).summary()


@router.post("/{tab_id}/duplicate", response_model=TabSummary, status_code=status.HTTP_201_CREATED)
async def duplicate_tab(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        return orchestrator.duplicate_tab(tab_id).summary()


@router.delete("/{tab_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_tab(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> Response:
    with http_errors():
        orchestrator.close_tab(tab_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{tab_id}/items", response_model=TabSummary)
async def add_item(
    tab_id: str,
    payload: AddItemRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.add_item(tab_id, OrderItem(**payload.model_dump()))
        return orchestrator.store.get(tab_id).summary()


@router.patch("/{tab_id}/items/{index}", response_model=TabSummary)
async def update_item(
    tab_id: str,
    index: int,
    payload: UpdateItemRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.update_item(tab_id, index, **payload.model_dump(exclude_unset=True))
        return orchestrator.store.get(tab_id).summary()


@router.delete("/{tab_id}/items/{index}", response_model=TabSummary)
async def remove_item(
    tab_id: str,
    index: int,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.remove_item(tab_id, index)
        return orchestrator.store.get(tab_id).summary()


@router.get("/{tab_id}/items/{index}/warehouses", response_model=AllocationPlanResponse)
async def read_allocation_plan(
    tab_id: str,
    index: int,
    fill: bool = Query(default=False),
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> AllocationPlanResponse:
    with http_errors():
        resolver = await orchestrator.allocation_session(tab_id, index)
        if fill:
            resolver.greedy_fill()
        return AllocationPlanResponse(**resolver.plan())


@router.put("/{tab_id}/items/{index}/allocations", response_model=TabSummary)
async def assign_allocations(
    tab_id: str,
    index: int,
    payload: AssignAllocationRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        await orchestrator.allocate(tab_id, index, payload.allocations)
        return orchestrator.store.get(tab_id).summary()


@router.put("/{tab_id}/customer", response_model=TabSummary)
async def set_customer(
    tab_id: str,
    payload: SetCustomerRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.set_customer(tab_id, CustomerRef(**payload.model_dump()))
        return orchestrator.store.get(tab_id).summary()


@router.put("/{tab_id}/discount", response_model=TabSummary)
async def set_discount(
    tab_id: str,
    payload: SetDiscountRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.set_global_discount(tab_id, payload.percent)
        return orchestrator.store.get(tab_id).summary()


@router.put("/{tab_id}/rounding", response_model=TabSummary)
async def set_rounding(
    tab_id: str,
    payload: SetRoundingRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.set_rounding(tab_id, payload.enabled)
        return orchestrator.store.get(tab_id).summary()


@router.put("/{tab_id}/posting-date", response_model=TabSummary)
async def set_posting_date(
    tab_id: str,
    payload: SetPostingDateRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.set_posting_date(tab_id, payload.posting_date)
        return orchestrator.store.get(tab_id).summary()


@router.put("/{tab_id}/other-details", response_model=TabSummary)
async def set_other_details(
    tab_id: str,
    payload: SetOtherDetailsRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TabSummary:
    with http_errors():
        orchestrator.store.set_other_details(tab_id, **payload.model_dump())
        return orchestrator.store.get(tab_id).summary()


@router.get("/{tab_id}/totals", response_model=TotalsBreakdown)
async def read_totals(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> TotalsBreakdown:
    with http_errors():
        return orchestrator.totals(tab_id)


@router.get("/{tab_id}/payment-preview", response_model=PaymentPreview)
async def read_payment_preview(
    tab_id: str,
    amount: float = Query(default=0, ge=0),
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> PaymentPreview:
    with http_errors():
        return await orchestrator.payment_preview(tab_id, amount)
