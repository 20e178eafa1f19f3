"""Main application entrypoint for the content gateway."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from casgateway.api.middleware import HTTPErrorLoggingMiddleware, RequestSizeLimitMiddleware
from casgateway.api.v1 import routes_health
from casgateway.api.v1.routes_files import router as files_router
from casgateway.core.config import settings
from casgateway.core.exceptions import GatewayError
from casgateway.core.logging import content_id_context, setup_logging
from casgateway.store.base import ContentStore
from casgateway.store.factory import create_content_store, wait_for_store

logger = logging.getLogger(__name__)


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render taxonomy errors as ``{error, code, details, ...}``."""
    content_id = exc.content_id or content_id_context.get()
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.error}: {exc.details}",
        extra={
            "error_code": exc.code,
            "operation": exc.operation,
            "content_id": content_id,
            "exit_code": exc.exit_code,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(settings.EXPOSE_STORE_DIAGNOSTICS),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    store: ContentStore = app.state.content_store
    try:
        await store.connect()
    except GatewayError as e:
        logger.error(
            "Content store connect failed",
            extra={"store": store.name, "endpoint": store.endpoint, "error": e.details},
        )
    else:
        await wait_for_store(
            store, settings.STORE_STARTUP_ATTEMPTS, settings.STORE_STARTUP_DELAY_SECONDS
        )

    yield

    await store.close()


def create_app(content_store: Optional[ContentStore] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        content_store: Store handle to use; built from settings when omitted

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    # Initialize logging first
    setup_logging()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.content_store = content_store or create_content_store(settings)

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_middleware(HTTPErrorLoggingMiddleware)
    # Outermost: sees the raw body before any parsing
    app.add_middleware(RequestSizeLimitMiddleware)

    # Register routers
    app.include_router(routes_health.router, tags=["health"])
    app.include_router(files_router, prefix=settings.FILES_ROUTE_PREFIX)

    logger.info(
        "Content gateway configured",
        extra={
            "store": app.state.content_store.name,
            "endpoint": app.state.content_store.endpoint,
            "files_prefix": settings.FILES_ROUTE_PREFIX,
        },
    )
    return app


# Export app instance for ASGI servers
app = create_app()
