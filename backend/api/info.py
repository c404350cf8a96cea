from fastapi import APIRouter, Depends

from dependencies import get_orchestrator
from schemas import ApiInfoResponse
from services.order_lifecycle_service import OrderLifecycleOrchestrator

router = APIRouter(prefix="/api", tags=["info"])


@router.get("/info", response_model=ApiInfoResponse)
async def read_info(
    orchestrator: OrderLifecycleOrchestrator = Depends(get_orchestrator),
) -> ApiInfoResponse:
    context = orchestrator.context
    return ApiInfoResponse(
        backend_url=orchestrator.gateway.base_url,
        user=context.user,
        pos_profile=context.profile_name,
        privileges=context.privileges,
        payment_modes=context.payment_modes,
    )
