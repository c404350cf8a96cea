from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from constants import (
    CSRF_HEADER,
    CUSTOMER_INSIGHTS_PATH,
    CUSTOMER_LIST_PATH,
    ITEM_WAREHOUSES_PATH,
    LOGGED_USER_PATH,
    LOGGER_NAME,
    LOGIN_PATH,
    LOGOUT_PATH,
    ORDER_CONFIRMATION_PATH,
    ORDER_CREATE_PATH,
    ORDER_DETAILS_PATH,
    ORDER_EDIT_PATH,
    PAYMENT_CREATE_PATH,
    POS_PROFILE_PATH,
    RETURN_AVAILABILITY_PATH,
    RETURN_ORDER_PATH,
)
from schemas import (
    CustomerInsights,
    CustomerRecord,
    Order,
    PosProfile,
    ReturnLine,
    ReturnReceipt,
    WarehouseStock,
)
from services import payload_normalizer as normalizer

logger = logging.getLogger(LOGGER_NAME)

CUSTOMER_PAGE_SIZE = 50
WAREHOUSE_PAGE_SIZE = 20


class BackendError(Exception):
    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload or {}


def _error_message(payload: Dict[str, Any], fallback: str) -> str:
    for key in ("message", "exception", "exc_type", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return fallback


class BackendGateway:
    """Cookie-session client for the order-management backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/", timeout=timeout
        )
        self._csrf_token: Optional[str] = None
        self.user: Optional[str] = None

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"X-Requested-With": "XMLHttpRequest"}
        if self._csrf_token:
            headers[CSRF_HEADER] = self._csrf_token
        return headers

    def _remember_csrf(self, response: httpx.Response) -> None:
        token = response.headers.get(CSRF_HEADER)
        if token:
            self._csrf_token = token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                data=data,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            logger.warning("Backend request %s %s failed: %s", method, path, exc)
            raise BackendError(f"Backend unreachable: {exc}") from exc

        self._remember_csrf(response)
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.status_code >= 400:
            raise BackendError(
                _error_message(body, f"Backend returned HTTP {response.status_code}"),
                status=response.status_code,
                payload=body,
            )
        if body.get("success") is False:
            raise BackendError(
                _error_message(body, "Backend rejected the request"),
                status=response.status_code,
                payload=body,
            )
        return body

    async def login(self, username: str, password: str) -> str:
        await self._request("POST", LOGIN_PATH, data={"usr": username, "pwd": password})
        self.user = username
        logger.info("Backend session opened for %s", username)
        return username

    async def logout(self) -> None:
        try:
            await self._request("GET", LOGOUT_PATH)
        finally:
            self._csrf_token = None
            self.user = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_logged_user(self) -> Optional[str]:
        body = await self._request("GET", LOGGED_USER_PATH)
        user = normalizer.unwrap_response(body)
        return str(user) if user else None

    async def get_pos_profile(self) -> PosProfile:
        body = await self._request("GET", POS_PROFILE_PATH)
        return normalizer.normalize_pos_profile(body)

    async def list_customers(self, search_term: str = "") -> List[CustomerRecord]:
        body = await self._request(
            "GET",
            CUSTOMER_LIST_PATH,
            params={
                "search_term": search_term,
                "limit_start": 1,
                "limit_page_length": CUSTOMER_PAGE_SIZE,
            },
        )
        return normalizer.normalize_customers(body)

    async def customer_amount_insights(self, customer_id: str) -> CustomerInsights:
        body = await self._request(
            "GET", CUSTOMER_INSIGHTS_PATH, params={"customer_id": customer_id}
        )
        return normalizer.normalize_customer_insights(customer_id, body)

    async def item_stock_warehouses(
        self, item_code: str, uom: Optional[str] = None
    ) -> List[WarehouseStock]:
        body = await self._request(
            "GET",
            ITEM_WAREHOUSES_PATH,
            params={
                "item_id": item_code,
                "search_text": "",
                "limit_start": 0,
                "limit_page_length": WAREHOUSE_PAGE_SIZE,
            },
        )
        return normalizer.normalize_warehouse_stock(body, uom)

    async def _submit_order(self, path: str, payload: Dict[str, Any]) -> str:
        body = await self._request("POST", path, json=payload)
        order_id = normalizer.extract_order_id(body) or payload.get("sales_order_id")
        if not order_id:
            raise BackendError("Backend did not return an order id", payload=body)
        return str(order_id)

    async def create_order(self, payload: Dict[str, Any]) -> str:
        return await self._submit_order(ORDER_CREATE_PATH, payload)

    async def edit_order(self, payload: Dict[str, Any]) -> str:
        return await self._submit_order(ORDER_EDIT_PATH, payload)

    async def get_order_details(self, order_id: str) -> Order:
        body = await self._request(
            "GET", ORDER_DETAILS_PATH, params={"sales_order_id": order_id}
        )
        order = normalizer.normalize_order(body)
        if not order.order_id:
            order.order_id = order_id
        return order

    async def confirm_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", ORDER_CONFIRMATION_PATH, json=payload)

    async def create_payment_entry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", PAYMENT_CREATE_PATH, json=payload)

    async def get_return_availability(self, order_id: str) -> List[ReturnLine]:
        body = await self._request(
            "GET", RETURN_AVAILABILITY_PATH, params={"order_id": order_id}
        )
        return normalizer.normalize_return_lines(body)

    async def return_order(self, payload: Dict[str, Any]) -> ReturnReceipt:
        body = await self._request("POST", RETURN_ORDER_PATH, json=payload)
        return normalizer.normalize_return_receipt(body)
