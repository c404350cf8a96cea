from fastapi import APIRouter, Depends

from dependencies import get_orchestrator, http_errors
from schemas import (
    ActionResult,
    ReturnQuantityRequest,
    ReturnSelectRequest,
    ReturnSessionResponse,
)
from services.order_lifecycle_service import OrderLifecycleOrchestrator, ReturnSession

router = APIRouter(prefix="/api/tabs", tags=["returns"])


def _session_response(session: ReturnSession) -> ReturnSessionResponse:
    return ReturnSessionResponse(
        invoice_number=session.invoice_number,
        lines=session.snapshot(),
    )


@router.post("/{tab_id}/returns/open", response_model=ReturnSessionResponse)
async def open_return(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ReturnSessionResponse:
    with http_errors():
        session = await orchestrator.open_return(tab_id)
        return _session_response(session)


@router.post("/{tab_id}/returns/select", response_model=ReturnSessionResponse)
async def select_return_line(
    tab_id: str,
    payload: ReturnSelectRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ReturnSessionResponse:
    with http_errors():
        session = orchestrator.select_return_line(tab_id, payload.item_code, payload.selected)
        return _session_response(session)


@router.post("/{tab_id}/returns/quantity", response_model=ReturnSessionResponse)
async def set_return_quantity(
    tab_id: str,
    payload: ReturnQuantityRequest,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ReturnSessionResponse:
    with http_errors():
        session = orchestrator.set_return_quantity(
            tab_id, payload.item_code, payload.qty, commit=payload.commit
        )
        return _session_response(session)


@router.post("/{tab_id}/returns/submit", response_model=ActionResult)
async def submit_return(
    tab_id: str,
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ActionResult:
    with http_errors():
        return await orchestrator.submit_return(tab_id)
