import asyncio
import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.requests import ClientDisconnect, Request
from checkout.config import Settings
from checkout.database import init_db, make_engine, make_session_factory
from checkout.main import create_web_app, format_currency
from checkout.models import Mac
from checkout.store import Store

UPSTREAM_BODY = b'{"ok":false,"message":"Your card was declined"}'


class UpstreamStream(httpx.AsyncByteStream):
    """An unread body, the way a live API server hands it back."""

    def __init__(self, *chunks):
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk


@pytest.fixture
def settings(tmp_path):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'web.db'}"

    async def _init():
        engine = make_engine(database_url)
        await init_db(engine)
        await engine.dispose()

    asyncio.run(_init())
    return Settings(
        database_url=database_url,
        stripe_key="pk_test_123",
        api_url="http://api.internal",
    )


@pytest.fixture
def upstream():
    """Records what reached the API tier and answers with a canned response."""
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(
            402,
            stream=UpstreamStream(UPSTREAM_BODY[:20], UPSTREAM_BODY[20:]),
            headers={"Content-Type": "text/plain", "X-Request-Id": "req-42"},
        )

    return seen, handler


def make_client(settings, handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TestClient(create_web_app(settings, http_client=http))


def seed_mac(database_url, **fields):
    async def _seed():
        engine = make_engine(database_url)
        async with make_session_factory(engine)() as db:
            mac = Mac(**fields)
            db.add(mac)
            await db.commit()
            mac_id = mac.id
        await engine.dispose()
        return mac_id

    return asyncio.run(_seed())


def test_proxy_relays_request_and_response(settings, upstream):
    seen, handler = upstream
    body = b'{"currency":"usd","amount":"1999"}'

    with make_client(settings, handler) as client:
        response = client.post("/api/payment-intent", content=body)

    assert len(seen) == 1
    sent = seen[0]
    assert sent.method == "POST"
    assert str(sent.url) == "http://api.internal/api/payment-intent"
    assert sent.headers["content-type"] == "application/json"
    assert sent.content == body
    assert "authorization" not in sent.headers

    assert response.status_code == 402
    assert response.content == UPSTREAM_BODY
    assert response.headers["content-type"] == "application/json"
    assert response.headers["x-request-id"] == "req-42"


def test_proxy_upstream_unreachable(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with make_client(settings, handler) as client:
        response = client.post("/api/payment-intent", json={"currency": "usd", "amount": "1999"})

    assert response.status_code == 500
    assert response.json() == {
        "ok": False,
        "message": "Internal Server Error: Failed to connect to API server: connection refused",
    }


def test_proxy_upstream_timeout(settings):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with make_client(settings, handler) as client:
        response = client.post("/api/payment-intent", json={"currency": "usd", "amount": "1999"})

    assert response.status_code == 500
    assert response.json()["ok"] is False


def test_proxy_request_body_unreadable(settings, upstream, mocker):
    seen, handler = upstream
    mocker.patch.object(Request, "body", side_effect=ClientDisconnect())

    with make_client(settings, handler) as client:
        response = client.post("/api/payment-intent", json={"currency": "usd", "amount": "1999"})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "message": "Bad Request: Invalid request body"}
    assert seen == []


def test_proxy_sends_service_token_when_configured(settings, upstream):
    seen, handler = upstream
    secured = Settings(
        database_url=settings.database_url,
        api_url=settings.api_url,
        jwt_secret="internal-secret",
    )

    with make_client(secured, handler) as client:
        client.post("/api/payment-intent", json={"currency": "usd", "amount": "1999"})

    assert seen[0].headers["authorization"].startswith("Bearer ")


def test_virtual_terminal(settings, upstream):
    with make_client(settings, upstream[1]) as client:
        response = client.get("/virtual-terminal")

    assert response.status_code == 200
    assert "Virtual Terminal" in response.text
    assert "pk_test_123" in response.text
    assert "https://js.stripe.com/v3/" in response.text


def test_payment_succeeded(settings, upstream):
    form = {
        "cardholder-name": "Ada Lovelace",
        "cardholder-email": "ada@example.com",
        "payment_intent": "pi_123",
        "payment_method": "pm_456",
        "payment_amount": "1999",
        "payment_currency": "usd",
    }

    with make_client(settings, upstream[1]) as client:
        response = client.post("/payment-succeeded", data=form)

    assert response.status_code == 200
    for value in form.values():
        assert value in response.text


def test_buy_once(settings, upstream):
    mac_id = seed_mac(
        settings.database_url,
        name="MacBook Pro",
        price=199900,
        description="14-inch, M3 Pro",
        inventory_level=5,
    )

    with make_client(settings, upstream[1]) as client:
        response = client.get(f"/mac/{mac_id}")

    assert response.status_code == 200
    assert "MacBook Pro" in response.text
    assert "$1,999.00" in response.text
    assert 'checkout.charge("199900", "usd")' in response.text


def test_buy_once_invalid_id(settings, upstream):
    with make_client(settings, upstream[1]) as client:
        response = client.get("/mac/abc")

    assert response.status_code == 400
    assert response.text == "Invalid product ID"


@pytest.mark.parametrize("mac_id", ["99999999999999999999999", "1_0", "0"])
def test_buy_once_rejects_ids_outside_key_range(settings, upstream, mac_id):
    with make_client(settings, upstream[1]) as client:
        response = client.get(f"/mac/{mac_id}")

    assert response.status_code == 400
    assert response.text == "Invalid product ID"


def test_buy_once_not_found(settings, upstream):
    with make_client(settings, upstream[1]) as client:
        response = client.get("/mac/42")

    assert response.status_code == 404
    assert response.text == "Product not found"


def test_buy_once_store_timeout(settings, upstream, mocker):
    mocker.patch.object(Store, "get_product", side_effect=asyncio.TimeoutError())

    with make_client(settings, upstream[1]) as client:
        response = client.get("/mac/1")

    assert response.status_code == 500
    assert response.text == "Internal server error"


def test_static_assets(settings, upstream):
    with make_client(settings, upstream[1]) as client:
        response = client.get("/static/js/checkout.js")

    assert response.status_code == 200
    assert "confirmCardPayment" in response.text


@pytest.mark.parametrize("cents, expected", [(0, "$0.00"), (5, "$0.05"), (1999, "$19.99"), (199900, "$1,999.00")])
def test_format_currency(cents, expected):
    assert format_currency(cents) == expected
