"""File API routes.

``GET /{content_id}`` is registered last so literal paths such as
``/test-ipfs`` are matched first.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from casgateway.api.dependencies import (
    get_content_store,
    get_retrieval_handler,
    get_upload_handler,
)
from casgateway.core.config import settings
from casgateway.core.exceptions import GatewayError
from casgateway.core.logging import content_id_context
from casgateway.handlers.retrieval import RetrievalHandler, validate_content_id
from casgateway.handlers.upload import UploadHandler
from casgateway.models.content import (
    MetadataResponse,
    NetworkResponse,
    PinResponse,
    StoreProbeResponse,
    UploadResponse,
)
from casgateway.store.base import ContentStore

router = APIRouter(tags=["files"])
logger = logging.getLogger(__name__)


@router.get("/test-ipfs", response_model=StoreProbeResponse)
async def probe_store(store: ContentStore = Depends(get_content_store)):
    """Probe connectivity to the content store."""
    try:
        info = await store.health_check()
    except GatewayError as e:
        body = e.to_dict(settings.EXPOSE_STORE_DIAGNOSTICS)
        body["error"] = "IPFS API test failed"
        body["ipfsApiUrl"] = store.endpoint
        return JSONResponse(status_code=500, content=body)

    return StoreProbeResponse(ipfsApiUrl=store.endpoint, ipfsVersion=info)


@router.get("/network", response_model=NetworkResponse)
async def get_network_info(store: ContentStore = Depends(get_content_store)) -> NetworkResponse:
    """Report which node backs the gateway and how many peers it sees."""
    info = await store.network_info()
    return NetworkResponse.from_info(info)


@router.get("/")
async def list_files() -> dict:
    """The gateway keeps no index of uploaded files."""
    return {
        "message": "File listing requires database integration",
        "note": "Use /upload to add files and /{hash} to retrieve them",
    }


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    request: Request, handler: UploadHandler = Depends(get_upload_handler)
) -> UploadResponse:
    """Upload one file (multipart field ``file``) to the content store."""
    async with request.form(max_files=1) as form:
        upload_request = handler.build_request(form)
        descriptor = await handler.upload(upload_request)

    return UploadResponse.from_descriptor(descriptor)


@router.get("/{content_id}/metadata", response_model=MetadataResponse)
async def get_metadata(
    content_id: str, store: ContentStore = Depends(get_content_store)
) -> MetadataResponse:
    """Return store-side size and block information for content."""
    validate_content_id(content_id)
    content_id_context.set(content_id)
    stat = await store.stat(content_id)
    return MetadataResponse(
        hash=stat.content_id,
        size=stat.size,
        cumulativeSize=stat.cumulative_size,
        blocks=stat.blocks,
        type=stat.type,
    )


@router.post("/{content_id}/pin", response_model=PinResponse)
async def pin_file(content_id: str, store: ContentStore = Depends(get_content_store)) -> PinResponse:
    """Pin content so the node keeps it through garbage collection."""
    validate_content_id(content_id)
    content_id_context.set(content_id)
    await store.pin(content_id)
    logger.info(f"Pinned content: content_id={content_id}")
    return PinResponse(hash=content_id, pinned=True)


@router.delete("/{content_id}", response_model=PinResponse)
async def unpin_file(content_id: str, store: ContentStore = Depends(get_content_store)) -> PinResponse:
    """Remove the pin; content-addressed data is never deleted directly."""
    validate_content_id(content_id)
    content_id_context.set(content_id)
    await store.unpin(content_id)
    logger.info(f"Unpinned content: content_id={content_id}")
    return PinResponse(hash=content_id, pinned=False)


@router.get("/{content_id}")
async def get_file(
    content_id: str, handler: RetrievalHandler = Depends(get_retrieval_handler)
) -> StreamingResponse:
    """Stream raw content bytes for a content identifier."""
    return await handler.stream_response(content_id)
