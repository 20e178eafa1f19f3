"""Content store backed by the Kubo RPC API."""

import json
import logging
from typing import Any, AsyncIterator, BinaryIO, Dict, Optional

import httpx

from casgateway.core.exceptions import (
    NotFound,
    StoreError,
    StoreRejected,
    StoreTimeout,
    StoreUnavailable,
)
from casgateway.models.content import ContentStat, NetworkInfo, StoredObject
from casgateway.store.base import ContentStore, ContentStream, looks_like_not_found

logger = logging.getLogger(__name__)


class IpfsHttpStore(ContentStore):
    """IPFS node reached over its HTTP RPC API (``/api/v0``).

    Every RPC call is a POST. The HTTP connection pool is capped at the
    same size as the slot pool.
    """

    name = "http"

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = 30.0,
        max_concurrency: int = 10,
        chunk_size: int = 65536,
        offline: bool = False,
        pin_on_add: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, max_concurrency=max_concurrency, chunk_size=chunk_size)
        self.api_url = api_url.rstrip("/")
        self.offline = offline
        self.pin_on_add = pin_on_add
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def endpoint(self) -> str:
        return self.api_url

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-load and cache the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.api_url}/api/v0",
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(
                    max_connections=self.max_concurrency,
                    max_keepalive_connections=self.max_concurrency,
                ),
                transport=self._transport,
            )
        return self._client

    async def connect(self) -> None:
        self._get_client()
        logger.info("IPFS HTTP store client ready", extra={"ipfs_api_url": self.api_url})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _params(self, **params: Any) -> Dict[str, Any]:
        if self.offline:
            params["offline"] = True
        return params

    def _transport_error(
        self, operation: str, exc: Exception, content_id: Optional[str] = None
    ) -> StoreError:
        error_cls = StoreTimeout if isinstance(exc, httpx.TimeoutException) else StoreUnavailable
        logger.error(
            "IPFS API call failed",
            extra={
                "operation": operation,
                "content_id": content_id,
                "ipfs_api_url": self.api_url,
                "error": str(exc) or type(exc).__name__,
                "error_type": type(exc).__name__,
            },
        )
        details = str(exc) or f"{type(exc).__name__} while calling {self.api_url}"
        if content_id is not None:
            details = f"{content_id}: {details}"
        return error_cls(
            details,
            content_id=content_id,
            operation=operation,
        )

    def _error_from_response(
        self, operation: str, response: httpx.Response, content_id: Optional[str] = None
    ) -> StoreError | NotFound:
        """Map a non-success RPC answer to the error taxonomy.

        The RPC API reports errors as ``{"Message": ..., "Code": ..., "Type": "error"}``.
        """
        message = response.text.strip()
        try:
            payload = response.json()
            if isinstance(payload, dict) and payload.get("Message"):
                message = payload["Message"]
        except ValueError:
            pass
        message = message or f"IPFS API returned HTTP {response.status_code}"

        logger.error(
            "IPFS API returned an error",
            extra={
                "operation": operation,
                "content_id": content_id,
                "status_code": response.status_code,
                "error": message,
            },
        )

        if content_id is not None and looks_like_not_found(message):
            return NotFound(f"{content_id}: {message}", content_id=content_id, operation=operation)
        return StoreRejected(message, content_id=content_id, operation=operation)

    async def _call(self, operation: str, path: str, content_id: Optional[str] = None, **kwargs: Any) -> httpx.Response:
        async with self._slot(operation, content_id):
            try:
                response = await self._get_client().post(path, **kwargs)
            except httpx.TransportError as e:
                raise self._transport_error(operation, e, content_id) from e
        if response.is_error:
            raise self._error_from_response(operation, response, content_id)
        return response

    @staticmethod
    def _json_lines(response: httpx.Response) -> list[Dict[str, Any]]:
        """Parse a response that may be newline-delimited JSON."""
        entries = []
        for line in response.text.splitlines():
            line = line.strip()
            if line:
                entries.append(json.loads(line))
        return entries

    async def health_check(self) -> Dict[str, Any]:
        response = await self._call("health", "/version", params=self._params())
        try:
            return response.json()
        except ValueError as e:
            raise StoreRejected(f"Unexpected version answer: {response.text[:200]}", operation="health") from e

    async def network_info(self) -> NetworkInfo:
        response = await self._call("network", "/id", params=self._params())
        try:
            identity = response.json()
        except ValueError as e:
            raise StoreRejected(f"Unexpected id answer: {response.text[:200]}", operation="network") from e

        peers = 0
        if not self.offline:
            response = await self._call("network", "/swarm/peers")
            try:
                peers = len(response.json().get("Peers") or [])
            except (ValueError, AttributeError) as e:
                raise StoreRejected(
                    f"Unexpected swarm peers answer: {response.text[:200]}", operation="network"
                ) from e

        return NetworkInfo(
            node_id=identity.get("ID", ""),
            addresses=identity.get("Addresses") or [],
            agent_version=identity.get("AgentVersion"),
            peers=peers,
        )

    async def add(self, file_data: BinaryIO, filename: str, mime_type: str) -> StoredObject:
        response = await self._call(
            "add",
            "/add",
            params=self._params(pin=self.pin_on_add),
            files={"file": (filename, file_data, mime_type)},
        )
        try:
            entries = self._json_lines(response)
        except ValueError as e:
            raise StoreRejected(f"Unexpected add answer: {response.text[:200]}", operation="add") from e

        # Progress lines carry no Hash; the final entry describes the added file
        added = next((entry for entry in reversed(entries) if entry.get("Hash")), None)
        if added is None:
            raise StoreRejected("IPFS add answer carries no content identifier", operation="add")

        size = added.get("Size")
        return StoredObject(
            content_id=added["Hash"],
            name=added.get("Name") or filename,
            store_size=int(size) if size is not None else None,
        )

    async def open_stream(self, content_id: str) -> ContentStream:
        await self._acquire_slot("cat", content_id)
        try:
            response = await self._send_cat(content_id)
        except BaseException:
            self._release_slot()
            raise

        async def on_close() -> None:
            try:
                await response.aclose()
            finally:
                self._release_slot()

        return ContentStream(content_id, self._iter_response(response, content_id), on_close)

    async def _send_cat(self, content_id: str) -> httpx.Response:
        client = self._get_client()
        request = client.build_request("POST", "/cat", params=self._params(arg=content_id))
        try:
            response = await client.send(request, stream=True)
        except httpx.TransportError as e:
            raise self._transport_error("cat", e, content_id) from e

        if response.is_error:
            try:
                await response.aread()
            finally:
                await response.aclose()
            raise self._error_from_response("cat", response, content_id)
        return response

    async def _iter_response(self, response: httpx.Response, content_id: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TransportError as e:
            raise self._transport_error("cat", e, content_id) from e

    async def stat(self, content_id: str) -> ContentStat:
        response = await self._call(
            "stat", "/files/stat", content_id, params=self._params(arg=f"/ipfs/{content_id}")
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise StoreRejected(
                f"Unexpected stat answer: {response.text[:200]}", content_id=content_id, operation="stat"
            ) from e
        return self._stat_from_payload(content_id, payload)

    async def pin(self, content_id: str) -> None:
        await self._call("pin", "/pin/add", content_id, params=self._params(arg=content_id))

    async def unpin(self, content_id: str) -> None:
        await self._call("unpin", "/pin/rm", content_id, params=self._params(arg=content_id))
