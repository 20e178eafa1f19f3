"""Retrieval handler: content identifier in, streamed bytes out."""

import logging
import re
from typing import AsyncIterator, Optional

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from casgateway.core.config import Settings, settings as default_settings
from casgateway.core.exceptions import GatewayError, NotFound
from casgateway.core.logging import content_id_context
from casgateway.models.content import RetrievalRequest
from casgateway.store.base import ContentStore, ContentStream

logger = logging.getLogger(__name__)

# CIDv0 is base58btc, CIDv1 defaults to base32; both are plain alphanumerics
CONTENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{1,128}$")


def validate_content_id(content_id: str) -> RetrievalRequest:
    """Reject identifiers that cannot be a CID without asking the store.

    Raises:
        NotFound: Identifier is empty or contains non-alphanumeric characters
    """
    if not CONTENT_ID_PATTERN.match(content_id):
        raise NotFound(
            f"{content_id}: malformed content identifier",
            content_id=content_id,
            operation="cat",
        )
    return RetrievalRequest(content_id=content_id)


class RetrievalHandler:
    """Streams content from the store to the client chunk by chunk.

    The response content type is a fixed default: the store does not
    keep the original MIME type.
    """

    def __init__(self, store: ContentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings

    async def open(self, content_id: str) -> ContentStream:
        """Validate the identifier and open a stream for it."""
        request = validate_content_id(content_id)
        content_id_context.set(request.content_id)
        return await self.store.open_stream(request.content_id)

    async def stream_response(self, content_id: str) -> StreamingResponse:
        """Build the streaming response; resolution errors raise before any byte is sent."""
        stream = await self.open(content_id)
        return StreamingResponse(
            self._forward(stream),
            media_type=self.settings.RETRIEVAL_CONTENT_TYPE,
            headers={"Content-Disposition": f'inline; filename="{content_id}.txt"'},
            # Runs after the body is sent or the client disconnects
            background=BackgroundTask(stream.aclose),
        )

    async def _forward(self, stream: ContentStream) -> AsyncIterator[bytes]:
        sent = 0
        try:
            async for chunk in stream.iter_bytes():
                sent += len(chunk)
                yield chunk
        except GatewayError as e:
            # Headers are already out; the body just ends early
            logger.error(
                "Content stream failed mid-transfer",
                extra={
                    "content_id": stream.content_id,
                    "bytes_sent": sent,
                    "error": e.details,
                    "error_code": e.code,
                    "exit_code": e.exit_code,
                },
            )
        finally:
            await stream.aclose()
            logger.debug(f"Stream closed: content_id={stream.content_id}, bytes_sent={sent}")
