import asyncio
import structlog
from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse
from jinja2 import TemplateError
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from checkout.proxy import forward
from checkout.schemas import parse_id

logger = structlog.get_logger(__name__)

router = APIRouter()


def render(request: Request, name: str, data: dict = None, stripe_js: bool = False):
    settings = request.app.state.settings
    return request.app.state.templates.TemplateResponse(
        request,
        name,
        {
            "data": data or {},
            "stripe_js": stripe_js,
            "stripe_publishable_key": settings.stripe_key,
        },
    )


@router.get("/virtual-terminal", response_class=HTMLResponse)
async def virtual_terminal(request: Request):
    return render(request, "terminal.html", stripe_js=True)


@router.post("/api/payment-intent")
async def payment_intent_proxy(request: Request):
    return await forward(request, "/api/payment-intent")


@router.post("/payment-succeeded", response_class=HTMLResponse)
async def payment_succeeded(
    request: Request,
    cardholder_name: str = Form("", alias="cardholder-name"),
    cardholder_email: str = Form("", alias="cardholder-email"),
    payment_intent: str = Form(""),
    payment_method: str = Form(""),
    payment_amount: str = Form(""),
    payment_currency: str = Form(""),
):
    logger.info("payment_succeeded", payment_intent=payment_intent, amount=payment_amount, currency=payment_currency)
    return render(request, "succeeded.html", {
        "cardholder": cardholder_name,
        "cardholder_email": cardholder_email,
        "pi": payment_intent,
        "pm": payment_method,
        "pa": payment_amount,
        "pc": payment_currency,
    })


@router.get("/mac/{mac_id}", response_class=HTMLResponse)
async def buy_once(mac_id: str, request: Request):
    pk = parse_id(mac_id)
    if pk is None:
        logger.error("mac_invalid_id", mac_id=mac_id)
        return PlainTextResponse("Invalid product ID", status_code=400)

    try:
        mac = await request.app.state.store.get_product(pk)
    except NoResultFound:
        logger.error("mac_not_found", mac_id=pk)
        return PlainTextResponse("Product not found", status_code=404)
    except (SQLAlchemyError, asyncio.TimeoutError) as e:
        logger.error("mac_lookup_failed", mac_id=pk, error=repr(e))
        return PlainTextResponse("Internal server error", status_code=500)

    try:
        return render(request, "buy-once.html", {"mac": mac}, stripe_js=True)
    except TemplateError as e:
        logger.error("template_render_failed", template="buy-once.html", error=str(e))
        return PlainTextResponse("Internal server error", status_code=500)
