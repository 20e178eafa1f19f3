"""FastAPI dependencies resolving the injected content store."""

from fastapi import Depends, Request

from casgateway.core.config import settings
from casgateway.handlers.retrieval import RetrievalHandler
from casgateway.handlers.upload import UploadHandler
from casgateway.store.base import ContentStore


def get_content_store(request: Request) -> ContentStore:
    """Return the store handle created by the application factory."""
    return request.app.state.content_store


def get_upload_handler(store: ContentStore = Depends(get_content_store)) -> UploadHandler:
    return UploadHandler(store, settings)


def get_retrieval_handler(store: ContentStore = Depends(get_content_store)) -> RetrievalHandler:
    return RetrievalHandler(store, settings)
