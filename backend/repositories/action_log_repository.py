import asyncio
import logging
from typing import Any, Dict, Optional

from constants import ACTION_LOG_TABLE, LOGGER_NAME
from supabase_client import get_supabase

logger = logging.getLogger(LOGGER_NAME)


def log_action(
    tab_id: str,
    order_id: Optional[str],
    action: str,
    *,
    user: Optional[str] = None,
    request: Optional[Dict[str, Any]] = None,
    response: Optional[Dict[str, Any]] = None,
    status: Optional[str] = None,
) -> None:
    record = {
        "tab_id": tab_id,
        "order_id": order_id,
        "action": action,
        "user": user,
        "request": request or {},
        "response": response or {},
        "status": status or "success",
    }
    get_supabase().table(ACTION_LOG_TABLE).insert(record).execute()


async def record_action(
    tab_id: str,
    order_id: Optional[str],
    action: str,
    **fields: Any,
) -> None:
    try:
        await asyncio.to_thread(log_action, tab_id, order_id, action, **fields)
    except Exception as exc:  # pragma: no cover - audit must never break an action
        logger.warning("Failed to record %s for tab %s: %s", action, tab_id, exc)
