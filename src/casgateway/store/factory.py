"""Content store selection and startup readiness."""

import logging
from typing import Any, Dict, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from casgateway.core.config import Settings, settings as default_settings
from casgateway.core.exceptions import StoreTimeout, StoreUnavailable
from casgateway.store.base import ContentStore
from casgateway.store.ipfs_cli import IpfsCliStore
from casgateway.store.ipfs_http import IpfsHttpStore

logger = logging.getLogger(__name__)


def create_content_store(settings: Optional[Settings] = None) -> ContentStore:
    """Build the content store adapter selected by STORE_TRANSPORT.

    Raises:
        ValueError: If the transport name is unknown
    """
    settings = settings or default_settings
    transport = settings.STORE_TRANSPORT.strip().lower()

    if transport == "http":
        return IpfsHttpStore(
            settings.IPFS_API_URL,
            timeout=settings.STORE_TIMEOUT_SECONDS,
            max_concurrency=settings.STORE_MAX_CONCURRENCY,
            chunk_size=settings.STREAM_CHUNK_SIZE,
            offline=settings.IPFS_OFFLINE,
            pin_on_add=settings.PIN_ON_ADD,
        )
    if transport == "cli":
        return IpfsCliStore(
            settings.IPFS_BINARY,
            ipfs_path=settings.IPFS_PATH,
            timeout=settings.STORE_TIMEOUT_SECONDS,
            max_concurrency=settings.STORE_MAX_CONCURRENCY,
            chunk_size=settings.STREAM_CHUNK_SIZE,
            offline=settings.IPFS_OFFLINE,
            pin_on_add=settings.PIN_ON_ADD,
        )
    raise ValueError(f"Unknown STORE_TRANSPORT: {settings.STORE_TRANSPORT!r} (expected 'http' or 'cli')")


async def wait_for_store(
    store: ContentStore, attempts: int, delay: float = 1.0
) -> Optional[Dict[str, Any]]:
    """Probe the store until it answers, with exponential backoff.

    Args:
        store: Store adapter to probe
        attempts: Maximum number of health checks
        delay: Initial wait between attempts in seconds

    Returns:
        Store version info, or None if the store never answered
    """
    if attempts < 1:
        return None

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=delay, min=delay, max=delay * 10),
            retry=retry_if_exception_type((StoreUnavailable, StoreTimeout)),
        ):
            with attempt:
                info = await store.health_check()
                logger.info(
                    "Content store is reachable",
                    extra={
                        "store": store.name,
                        "endpoint": store.endpoint,
                        "attempt": attempt.retry_state.attempt_number,
                    },
                )
                return info
    except RetryError as e:
        logger.error(
            "Content store did not become reachable",
            extra={
                "store": store.name,
                "endpoint": store.endpoint,
                "attempts": attempts,
                "error": str(e.last_attempt.exception()),
            },
        )
    return None
