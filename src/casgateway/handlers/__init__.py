"""Request handlers sitting between the router and the content store."""

from casgateway.handlers.retrieval import RetrievalHandler, validate_content_id
from casgateway.handlers.upload import UploadHandler

__all__ = ["RetrievalHandler", "UploadHandler", "validate_content_id"]
