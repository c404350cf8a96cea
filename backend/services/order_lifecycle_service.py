from typing import Optional

from config import Settings, settings
from gateway import BackendGateway
from repositories.action_log_repository import record_action
from repositories.tab_store import Tab, TabStore
from services.order_lifecycle.errors import (
    ActionNotAllowed,
    AllocationError,
    LifecycleError,
    OrderLocked,
    OverAllocationError,
    ResolutionError,
    ReturnSelectionError,
    TabLimitReached,
    TabNotFound,
)
from services.order_lifecycle.orchestrator import ActionLog, OrderLifecycleOrchestrator
from services.order_lifecycle.returns import ReturnSession
from services.session_service import SessionContext

__all__ = [
    "ActionNotAllowed",
    "AllocationError",
    "LifecycleError",
    "OrderLifecycleOrchestrator",
    "OrderLocked",
    "OverAllocationError",
    "ResolutionError",
    "ReturnSelectionError",
    "ReturnSession",
    "Tab",
    "TabLimitReached",
    "TabNotFound",
    "build_orchestrator",
]


def build_orchestrator(
    gateway: BackendGateway,
    context: SessionContext,
    config: Settings = settings,
    action_log: Optional[ActionLog] = None,
) -> OrderLifecycleOrchestrator:
    store = TabStore(
        max_open_tabs=config.max_open_tabs,
        max_new_tabs=config.max_new_tabs,
        tax_rate=context.tax_rate,
    )
    if action_log is None and config.action_log_enabled:
        action_log = record_action
    return OrderLifecycleOrchestrator(gateway, context, store, action_log=action_log)
