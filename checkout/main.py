from pathlib import Path
from typing import Optional
import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from checkout.api_routes import router as api_router
from checkout.config import Settings
from checkout.database import init_db, make_engine, make_session_factory
from checkout.log import configure_logging
from checkout.schemas import ErrorResponse
from checkout.store import Store
from checkout.stripe_service import Card
from checkout.web_routes import router as web_router

PACKAGE_DIR = Path(__file__).resolve().parent

logger = structlog.get_logger(__name__)


def format_currency(cents) -> str:
    dollars, cents = divmod(int(cents), 100)
    return f"${dollars:,}.{cents:02d}"


async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


def _attach_store(app: FastAPI, settings: Settings):
    engine = make_engine(settings.database_url)
    app.state.settings = settings
    app.state.engine = engine
    app.state.store = Store(make_session_factory(engine))

    @app.on_event("shutdown")
    async def _db_stop():
        await engine.dispose()


def create_api_app(settings: Optional[Settings] = None) -> FastAPI:
    """Internal API server: payment intents and product lookups."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="Mac Store API")
    _attach_store(app, settings)
    app.state.card = Card(settings.stripe_secret, timeout=settings.stripe_timeout)

    app.add_exception_handler(StarletteHTTPException, http_error)
    app.include_router(api_router)

    @app.get("/health")
    async def health():
        return {"ok": True, "service": "api"}

    @app.on_event("startup")
    async def _db_init():
        await init_db(app.state.engine)
        if not settings.jwt_secret:
            logger.warning("internal_auth_disabled", reason="INTERNAL_JWT_SECRET is not set")
        if not settings.stripe_secret:
            logger.warning("stripe_not_configured", reason="STRIPE_SECRET is not set")

    return app


def create_web_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Public web server: pages plus the payment-intent proxy."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="Mac Store")
    _attach_store(app, settings)

    templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))
    templates.env.filters["format_currency"] = format_currency
    app.state.templates = templates
    app.state.http = http_client

    app.mount("/static", StaticFiles(directory=str(PACKAGE_DIR / "static")), name="static")
    app.include_router(web_router)

    @app.get("/health")
    async def health():
        return {"ok": True, "service": "web"}

    @app.on_event("startup")
    async def _http_client_start():
        if app.state.http is None:
            app.state.http = httpx.AsyncClient(timeout=settings.api_timeout)

    @app.on_event("shutdown")
    async def _http_client_stop():
        if app.state.http is not None:
            await app.state.http.aclose()
            app.state.http = None

    return app
