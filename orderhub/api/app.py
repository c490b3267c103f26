"""FastAPI application factory.

Routers are registered first, then error handlers and rate limiting.
Every AppError renders as {"error": message} with its status code;
anything else is logged and becomes a bare 500.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from orderhub import __version__
from orderhub.api import catalog, health, orders, payments, shipments, webhooks, wishlist
from orderhub.api.security import limiter, rate_limit_exceeded_handler
from orderhub.config import settings
from orderhub.errors import AppError
from orderhub.services import Services, get_services, set_services

logger = logging.getLogger(__name__)


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    services = get_services()
    logger.info("orderhub %s starting (store=%s)", __version__, type(services.store).__name__)
    yield
    await services.retry_queue.close()
    services.mailer.shutdown()
    logger.info("orderhub stopped")


def create_app(services: Services | None = None) -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if services is not None:
        set_services(services)

    app = FastAPI(title="orderhub", version=__version__, lifespan=_lifespan)
    for module in (webhooks, catalog, orders, shipments, payments, wishlist, health):
        app.include_router(module.router)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    return app
