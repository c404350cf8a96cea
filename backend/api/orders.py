from fastapi import APIRouter, Depends

from dependencies import get_orchestrator, http_errors
from schemas import ActionResult, ConfirmRequest, PayRequest
from services.order_lifecycle_service import OrderLifecycleOrchestrator

router = APIRouter(prefix="/api/tabs", tags=["orders"])


@router.post("/{tab_id}/save", response_model=ActionResult)
async def save_order(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ActionResult:
    with http_errors():
        return await orchestrator.save(tab_id)


@router.post("/{tab_id}/confirm", response_model=ActionResult)
async def confirm_order(
    tab_id: str,
    payload: ConfirmRequest | None = None,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ActionResult:
    mode = payload.mode_of_payment if payload else None
    with http_errors():
        return await orchestrator.confirm(tab_id, mode)


@router.post("/{tab_id}/pay", response_model=ActionResult)
async def pay_order(
    tab_id: str,
    payload: PayRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ActionResult:
    with http_errors():
        return await orchestrator.pay(
            tab_id,
            payload.amount,
            mode_of_payment=payload.mode_of_payment,
            posting_date=payload.posting_date,
            confirm_first=payload.confirm_first,
        )


@router.post("/{tab_id}/refresh", response_model=ActionResult)
async def refresh_order(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ActionResult:
    with http_errors():
        return await orchestrator.refresh(tab_id)
