import json
from urllib.parse import parse_qs

import httpx
import pytest

from constants import CSRF_HEADER
from gateway import BackendError, BackendGateway


def _gateway(handler):
    client = httpx.AsyncClient(base_url="http://erp.test/", transport=httpx.MockTransport(handler))
    return BackendGateway("http://erp.test", client=client)


async def test_login_posts_form_and_remembers_csrf_token():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/login"):
            return httpx.Response(200, json={"message": "Logged In"}, headers={CSRF_HEADER: "tok-1"})
        return httpx.Response(200, json={"message": "cashier@example.com"})

    gateway = _gateway(handler)
    await gateway.login("cashier@example.com", "secret")
    user = await gateway.get_logged_user()
    await gateway.aclose()

    assert parse_qs(seen[0].content.decode()) == {"usr": ["cashier@example.com"], "pwd": ["secret"]}
    assert CSRF_HEADER not in seen[0].headers
    assert seen[1].headers[CSRF_HEADER] == "tok-1"
    assert user == "cashier@example.com"
    assert gateway.user == "cashier@example.com"


async def test_http_error_carries_payload():
    server_messages = json.dumps([json.dumps({"message": "Insufficient Stock: Item: ABC-123 needs 5"})])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(417, json={"exception": "ValidationError", "_server_messages": server_messages})

    gateway = _gateway(handler)
    with pytest.raises(BackendError) as excinfo:
        await gateway.create_order({"customer": "CUST-0001", "items": []})

    assert excinfo.value.status == 417
    assert excinfo.value.message == "ValidationError"
    assert excinfo.value.payload["_server_messages"] == server_messages


async def test_success_false_is_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "Customer is disabled"})

    gateway = _gateway(handler)
    with pytest.raises(BackendError, match="Customer is disabled"):
        await gateway.confirm_order({"sales_order_id": "SAL-ORD-1"})


async def test_transport_failure_becomes_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = _gateway(handler)
    with pytest.raises(BackendError, match="Backend unreachable"):
        await gateway.get_pos_profile()


async def test_create_order_extracts_id():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["customer"] == "CUST-0001"
        return httpx.Response(200, json={"data": {"data": {"sales_order_id": "SAL-ORD-2024-00007"}}})

    gateway = _gateway(handler)

    assert await gateway.create_order({"customer": "CUST-0001"}) == "SAL-ORD-2024-00007"


async def test_edit_order_falls_back_to_sent_id():
    gateway = _gateway(lambda request: httpx.Response(200, json={"message": "ok"}))

    assert await gateway.edit_order({"sales_order_id": "SAL-ORD-2024-00008"}) == "SAL-ORD-2024-00008"


async def test_create_order_without_id_is_an_error():
    gateway = _gateway(lambda request: httpx.Response(200, json={"message": "ok"}))

    with pytest.raises(BackendError):
        await gateway.create_order({"customer": "CUST-0001"})


async def test_order_details_query_and_normalization():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["sales_order_id"] == "SAL-ORD-2024-00009"
        return httpx.Response(
            200,
            json={"data": {"docstatus": 0, "items": [{"item_code": "ABC-123", "qty": 1, "rate": 5}]}},
        )

    gateway = _gateway(handler)
    order = await gateway.get_order_details("SAL-ORD-2024-00009")

    assert order.order_id == "SAL-ORD-2024-00009"
    assert order.items[0].item_code == "ABC-123"


async def test_customer_search_params():
    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        assert params["search_term"] == "Acme"
        assert params["limit_start"] == "1"
        assert params["limit_page_length"] == "50"
        return httpx.Response(200, json={"data": [{"name": "CUST-0001", "customer_name": "Acme Traders"}]})

    gateway = _gateway(handler)
    customers = await gateway.list_customers("Acme")

    assert [c.customer_id for c in customers] == ["CUST-0001"]


async def test_list_body_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[{"warehouse": "Stores - C", "quantities": [{"uom": "Nos", "qty": 4}]}],
        )

    gateway = _gateway(handler)
    stock = await gateway.item_stock_warehouses("ABC-123", "Nos")

    assert stock[0].available == 4


async def test_logout_forgets_session():
    gateway = _gateway(
        lambda request: httpx.Response(200, json={"message": "ok"}, headers={CSRF_HEADER: "tok-2"})
    )
    await gateway.login("cashier@example.com", "secret")

    await gateway.logout()

    assert gateway.user is None
    assert CSRF_HEADER not in gateway._headers()
