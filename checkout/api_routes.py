import asyncio
import json
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import ValidationError
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from checkout.auth import verify_token
from checkout.schemas import INTEGER_RE, MacResponse, PaymentIntentRequest, parse_id
from checkout.stripe_service import PaymentGatewayError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", dependencies=[Depends(verify_token)])


def json_response(body: str, status_code: int = 200) -> Response:
    return Response(content=body, status_code=status_code, media_type="application/json")


@router.post("/payment-intent")
async def create_payment_intent(request: Request):
    body = await request.body()

    try:
        payload = PaymentIntentRequest.model_validate_json(body)
    except ValidationError as e:
        logger.error("payment_intent_bad_payload", error=str(e), body_size=len(body))
        raise HTTPException(status_code=400, detail=f"Invalid request payload: {e.errors()[0]['msg']}")

    logger.info("payment_intent_requested", amount=payload.amount, currency=payload.currency)

    if not INTEGER_RE.fullmatch(payload.amount) or int(payload.amount) <= 0:
        logger.error("payment_intent_invalid_amount", amount=payload.amount)
        raise HTTPException(status_code=400, detail="Invalid amount")
    amount = int(payload.amount)

    settings = request.app.state.settings
    if not settings.stripe_secret:
        logger.error("stripe_secret_missing")
        raise HTTPException(
            status_code=500,
            detail="Stripe secret key is not configured. Please set STRIPE_SECRET environment variable.",
        )

    card = request.app.state.card
    try:
        intent = await run_in_threadpool(card.create_payment_intent, payload.currency, amount)
    except PaymentGatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info("payment_intent_created", intent_id=intent.id, amount=amount, currency=payload.currency)
    return json_response(json.dumps(intent.to_dict(), indent=3))


@router.get("/mac/{mac_id}")
async def get_mac(mac_id: str, request: Request):
    pk = parse_id(mac_id)
    if pk is None:
        logger.error("mac_invalid_id", mac_id=mac_id)
        raise HTTPException(status_code=400, detail="Invalid product ID")

    try:
        mac = await request.app.state.store.get_product(pk)
    except NoResultFound:
        logger.error("mac_not_found", mac_id=pk)
        raise HTTPException(status_code=404, detail="Product not found")
    except (SQLAlchemyError, asyncio.TimeoutError) as e:
        logger.error("mac_lookup_failed", mac_id=pk, error=repr(e))
        raise HTTPException(status_code=500, detail="Unable to load product")

    return json_response(MacResponse.model_validate(mac).model_dump_json(indent=3))
