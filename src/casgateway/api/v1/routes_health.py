"""Health check endpoint for the content gateway."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from casgateway.api.dependencies import get_content_store
from casgateway.core.config import settings
from casgateway.core.exceptions import GatewayError
from casgateway.store.base import ContentStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(store: ContentStore = Depends(get_content_store)):
    """Liveness probe against the content store.

    Returns:
        200 with service and store version information, or 503 with the
        store diagnostic when the store does not answer
    """
    try:
        info = await store.health_check()
    except GatewayError as e:
        logger.warning(
            "Health check failed",
            extra={"store": store.name, "endpoint": store.endpoint, "error": e.details},
        )
        return JSONResponse(
            status_code=503,
            content={
                "status": "unavailable",
                "service": settings.SERVICE_NAME,
                "version": settings.SERVICE_VERSION,
                **e.to_dict(settings.EXPOSE_STORE_DIAGNOSTICS),
            },
        )

    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "store": {
            "transport": store.name,
            "endpoint": store.endpoint,
            "version": info.get("Version"),
        },
    }
