"""Upload handler: multipart file in, content descriptor out."""

import logging
from typing import Optional

from starlette.datastructures import FormData, UploadFile

from casgateway.core.config import Settings, settings as default_settings
from casgateway.core.exceptions import MissingFile, PayloadTooLarge, StoreError
from casgateway.core.logging import content_id_context
from casgateway.models.content import ContentDescriptor, UploadRequest
from casgateway.store.base import ContentStore

logger = logging.getLogger(__name__)

FILE_FIELD = "file"


def gateway_read_url(settings: Settings, content_id: str) -> str:
    """URL of the content on the public IPFS HTTP gateway."""
    return f"{settings.ipfs_gateway_base}/ipfs/{content_id}"


def store_read_url(settings: Settings, content_id: str) -> str:
    """URL of the content on the store's RPC API."""
    return f"{settings.ipfs_api_base}/api/v0/cat?arg={content_id}"


class UploadHandler:
    """Validates one uploaded file and hands it to the content store.

    No retry is attempted; a failed store call surfaces to the caller.
    """

    def __init__(self, store: ContentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings

    def build_request(self, form: FormData) -> UploadRequest:
        """Extract the single file of a parsed multipart form.

        Raises:
            MissingFile: No ``file`` field, or it is not a file part
            PayloadTooLarge: File exceeds MAX_UPLOAD_MB
        """
        files = [value for value in form.getlist(FILE_FIELD) if isinstance(value, UploadFile)]
        if not files:
            raise MissingFile(f"Multipart field '{FILE_FIELD}' is required")
        if len(files) > 1:
            raise MissingFile(f"Exactly one '{FILE_FIELD}' field is accepted, got {len(files)}")
        upload = files[0]

        # Validate file size
        upload.file.seek(0, 2)
        size_bytes = upload.file.tell()
        upload.file.seek(0)

        if size_bytes > self.settings.max_upload_bytes:
            raise PayloadTooLarge(
                f"File size exceeds maximum allowed size of {self.settings.MAX_UPLOAD_MB}MB"
            )

        return UploadRequest(
            file_data=upload.file,
            original_name=upload.filename or "unnamed",
            mime_type=upload.content_type or "application/octet-stream",
            size_bytes=size_bytes,
        )

    async def upload(self, request: UploadRequest) -> ContentDescriptor:
        """Store the file and describe the result.

        Raises:
            StoreUnavailable, StoreRejected, StoreTimeout
        """
        try:
            stored = await self.store.add(request.file_data, request.original_name, request.mime_type)
        except StoreError as e:
            logger.error(
                "Upload to content store failed",
                extra={
                    "file_name": request.original_name,
                    "size_bytes": request.size_bytes,
                    "store": self.store.name,
                    "error": e.details,
                    "error_code": e.code,
                },
            )
            raise

        content_id_context.set(stored.content_id)
        logger.info(
            f"Upload completed: content_id={stored.content_id}, name={request.original_name}, "
            f"size={request.size_bytes}, store={self.store.name}"
        )

        return ContentDescriptor(
            content_id=stored.content_id,
            original_name=request.original_name,
            size_bytes=request.size_bytes,
            source_url=gateway_read_url(self.settings, stored.content_id),
            api_url=store_read_url(self.settings, stored.content_id),
        )
