"""FastAPI hosting of the log fetch proxy: a mountable router and a standalone app."""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from ..config import resolve_secret
from ..types import OpsDashConfig, ProxyConfig
from .core import fetch_error_logs, fetch_folder, fetch_pattern
from .kv import StoreFactory, redact, store_factory_for

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

UNAUTHORIZED_BODY = {"error": "Unauthorized"}
RATE_LIMITED_BODY = {"error": "Too many requests - please try again later"}


class ProxyAuthError(Exception):
    """Missing or wrong bearer token."""


def check_bearer(header: str | None, token: str) -> bool:
    if not token or not header:
        return False
    return hmac.compare_digest(header.encode(), f"Bearer {token}".encode())


def _store_error(e: Exception) -> JSONResponse:
    logger.error("Error fetching key-value data: %s", redact(str(e)))
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to fetch data", "details": redact(str(e)) or type(e).__name__},
    )


def create_router(
    proxy_config: ProxyConfig,
    store_factory: StoreFactory,
    *,
    limiter: Limiter | None = None,
) -> APIRouter:
    """Build the proxy routes. The host app must call ``install_proxy_handlers``.

    Every request opens its own store connection and closes it before
    returning, whatever the outcome.
    """
    token = resolve_secret(proxy_config.api_token, proxy_config.api_token_env)
    if not token:
        logger.warning("No proxy token configured (%s); every request will be rejected", proxy_config.api_token_env)
    limiter = limiter or Limiter(key_func=get_remote_address)
    rate = proxy_config.rate_limit
    prefixes = tuple(proxy_config.error_prefixes)

    async def require_token(request: Request) -> None:
        if not check_bearer(request.headers.get("authorization"), token):
            raise ProxyAuthError()

    router = APIRouter(dependencies=[Depends(require_token)])

    @router.get("/fetch")
    @limiter.limit(rate)
    async def fetch_by_pattern(request: Request, key_pattern: str | None = Query(None, alias="keyPattern")):
        if not key_pattern:
            return JSONResponse(status_code=400, content={"error": "Key pattern is required"})
        store = None
        try:
            store = store_factory()
            return await fetch_pattern(store, key_pattern)
        except Exception as e:
            return _store_error(e)
        finally:
            if store is not None:
                await store.aclose()

    @router.get("/api/redis-logs")
    @limiter.limit(rate)
    async def error_logs(request: Request):
        store = None
        try:
            store = store_factory()
            return await fetch_error_logs(store, prefixes)
        except Exception as e:
            return _store_error(e)
        finally:
            if store is not None:
                await store.aclose()

    @router.post("/api/redis-logs")
    @limiter.limit(rate)
    async def folder_logs(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        folder = body.get("folder") if isinstance(body, dict) else None
        if not folder or not isinstance(folder, str):
            return JSONResponse(status_code=400, content={"error": "Folder is required"})
        store = None
        try:
            store = store_factory()
            return await fetch_folder(store, folder)
        except Exception as e:
            return _store_error(e)
        finally:
            if store is not None:
                await store.aclose()

    return router


def install_proxy_handlers(app: FastAPI, limiter: Limiter) -> None:
    """Error bodies for auth/rate failures, plus CORS and OPTIONS preflight."""
    app.state.limiter = limiter

    @app.exception_handler(ProxyAuthError)
    async def _unauthorized(request: Request, exc: ProxyAuthError):
        return JSONResponse(status_code=403, content=UNAUTHORIZED_BODY)

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded):
        logger.info("Rate limit exceeded for %s on %s", get_remote_address(request), request.url.path)
        return JSONResponse(status_code=429, content=RATE_LIMITED_BODY)

    @app.middleware("http")
    async def _cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.setdefault("Access-Control-Allow-Origin", "*")
        return response


def create_app(
    config: OpsDashConfig,
    *,
    store_factory: StoreFactory | None = None,
) -> FastAPI:
    """Standalone proxy application for uvicorn."""
    store_factory = store_factory or store_factory_for(config.key_value)
    limiter = Limiter(key_func=get_remote_address)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        logger.info(
            "Log fetch proxy ready (rate limit %s, prefixes %s)",
            config.proxy.rate_limit, ", ".join(config.proxy.error_prefixes),
        )
        yield

    app = FastAPI(title="opsdash log proxy", lifespan=lifespan)
    install_proxy_handlers(app, limiter)
    app.include_router(create_router(config.proxy, store_factory, limiter=limiter))
    return app
