"""Abstract content store interface."""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, BinaryIO, Callable, Dict, Optional

from casgateway.core.exceptions import StoreTimeout
from casgateway.models.content import ContentStat, NetworkInfo, StoredObject

logger = logging.getLogger(__name__)

# Fragments of store error messages that mean "this identifier cannot be resolved"
NOT_FOUND_MARKERS = (
    "not found",
    "could not find",
    "invalid path",
    "invalid cid",
    "failed to decode",
    "selected encoding not supported",
    "no link named",
    "is not a valid",
)


def looks_like_not_found(message: str) -> bool:
    """Check whether a store error message reports an unknown or malformed identifier."""
    lowered = message.lower()
    return any(marker in lowered for marker in NOT_FOUND_MARKERS)


class ContentStream:
    """Open byte stream for one content identifier.

    Holds one slot of the store's bounded pool until ``aclose`` runs,
    either after the last chunk or when the consumer goes away.
    """

    def __init__(
        self,
        content_id: str,
        chunks: AsyncIterator[bytes],
        on_close: Callable[[], Awaitable[None]],
    ):
        self.content_id = content_id
        self._chunks = chunks
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield chunks as the store produces them, closing the stream at the end."""
        try:
            async for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Cancel the transport and release the pool slot. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._on_close()


class ContentStore(ABC):
    """Abstract base class for content-addressable store adapters.

    Every call out to the store first takes a slot from a fixed-size
    pool, waiting at most ``timeout`` seconds for it.
    """

    name = "abstract"

    def __init__(self, *, timeout: float = 30.0, max_concurrency: int = 10, chunk_size: int = 65536):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self.chunk_size = chunk_size
        self._slots = asyncio.Semaphore(max_concurrency)

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Human-readable location of the store (URL or command)."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying client handle. Safe to call more than once."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying client handle."""

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return store version information.

        Raises:
            StoreUnavailable: Store cannot be reached
            StoreTimeout: Store did not answer in time
        """

    @abstractmethod
    async def network_info(self) -> NetworkInfo:
        """Return the node identity along with its connected peer count.

        The peer count is 0 without asking the node when it runs offline.
        """

    @abstractmethod
    async def add(self, file_data: BinaryIO, filename: str, mime_type: str) -> StoredObject:
        """Send content to the store.

        Args:
            file_data: File content stream, read in chunks
            filename: Original file name
            mime_type: MIME type reported by the client

        Returns:
            The store's answer, including the content identifier it derived

        Raises:
            StoreUnavailable, StoreRejected, StoreTimeout
        """

    @abstractmethod
    async def open_stream(self, content_id: str) -> ContentStream:
        """Open a byte stream for a content identifier.

        Resolution failures are raised here, before any byte is produced.

        Raises:
            NotFound, StoreUnavailable, StoreRejected, StoreTimeout
        """

    @abstractmethod
    async def stat(self, content_id: str) -> ContentStat:
        """Return store-side metadata for a content identifier."""

    @abstractmethod
    async def pin(self, content_id: str) -> None:
        """Pin content so the store keeps it."""

    @abstractmethod
    async def unpin(self, content_id: str) -> None:
        """Remove the pin for content."""

    async def _acquire_slot(self, operation: str, content_id: Optional[str] = None) -> None:
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "No content store slot available",
                extra={
                    "operation": operation,
                    "content_id": content_id,
                    "max_concurrency": self.max_concurrency,
                    "timeout": self.timeout,
                },
            )
            details = f"No content store slot available within {self.timeout}s"
            raise StoreTimeout(
                f"{content_id}: {details}" if content_id else details,
                content_id=content_id,
                operation=operation,
            )

    def _release_slot(self) -> None:
        self._slots.release()

    @asynccontextmanager
    async def _slot(self, operation: str, content_id: Optional[str] = None):
        await self._acquire_slot(operation, content_id)
        try:
            yield
        finally:
            self._release_slot()

    @staticmethod
    def _stat_from_payload(content_id: str, payload: Dict[str, Any]) -> ContentStat:
        return ContentStat(
            content_id=content_id,
            size=int(payload.get("Size", 0)),
            cumulative_size=payload.get("CumulativeSize"),
            blocks=payload.get("Blocks"),
            type=payload.get("Type"),
        )
