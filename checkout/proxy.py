"""
Reverse proxy from the web tier to the API tier.

The request body is forwarded byte for byte and the upstream body is streamed
back unparsed. One hop, no retries; the shared client's timeout bounds how
long a slow API server can hold the request.
"""
import httpx
import structlog
from fastapi import Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect
from checkout.auth import create_service_token

logger = structlog.get_logger(__name__)

# Connection-scoped headers that must not be relayed, plus the ones the ASGI
# server writes itself.
SKIP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "content-type",
    "date",
    "server",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "message": message})


async def forward(request: Request, path: str):
    try:
        body = await request.body()
    except ClientDisconnect as e:
        logger.error("proxy_read_body_failed", error=str(e))
        return _error(400, "Bad Request: Invalid request body")

    settings = request.app.state.settings
    client: httpx.AsyncClient = request.app.state.http

    headers = {"Content-Type": "application/json"}
    if settings.jwt_secret:
        headers["Authorization"] = f"Bearer {create_service_token(settings.jwt_secret)}"

    upstream = client.build_request("POST", f"{settings.api_url}{path}", content=body, headers=headers)
    try:
        resp = await client.send(upstream, stream=True)
    except httpx.HTTPError as e:
        logger.error("proxy_upstream_failed", url=str(upstream.url), error=str(e))
        return _error(500, f"Internal Server Error: Failed to connect to API server: {e}")

    out_headers = [(k, v) for k, v in resp.headers.multi_items() if k.lower() not in SKIP_HEADERS]

    logger.info("proxy_upstream_response", url=str(upstream.url), status=resp.status_code)
    response = StreamingResponse(
        resp.aiter_raw(),
        status_code=resp.status_code,
        media_type="application/json",
        background=BackgroundTask(resp.aclose),
    )
    for key, value in out_headers:
        response.headers.append(key, value)
    return response
