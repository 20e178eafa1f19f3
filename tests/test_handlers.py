"""Tests for the upload and retrieval handlers."""

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.datastructures import FormData, Headers, UploadFile

from casgateway.core.config import Settings
from casgateway.core.exceptions import MissingFile, NotFound, PayloadTooLarge, StoreRejected
from casgateway.handlers.retrieval import RetrievalHandler, validate_content_id
from casgateway.handlers.upload import UploadHandler
from casgateway.models.content import StoredObject, UploadRequest
from casgateway.store.base import ContentStream


@pytest.fixture
def handler_settings():
    """Settings with a 1 MB ceiling and fixed URLs."""
    return Settings(
        MAX_UPLOAD_MB=1,
        IPFS_API_URL="http://node:5001/",
        IPFS_GATEWAY_URL="https://gw.example/",
    )


@pytest.fixture
def mock_store():
    """Store double with an AsyncMock add."""
    store = MagicMock()
    store.name = "mock"
    store.add = AsyncMock(return_value=StoredObject(content_id="QmMockCid", name="a.txt"))
    return store


def _form_with_file(content: bytes, filename: str = "a.txt") -> FormData:
    upload = UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": "text/plain"}),
    )
    return FormData([("file", upload)])


def test_build_request_reads_size(mock_store, handler_settings):
    """Test that the upload request carries name, type and size."""
    handler = UploadHandler(mock_store, handler_settings)

    request = handler.build_request(_form_with_file(b"hello"))

    assert request.original_name == "a.txt"
    assert request.mime_type == "text/plain"
    assert request.size_bytes == 5
    assert request.file_data.read() == b"hello"


def test_build_request_missing_file(mock_store, handler_settings):
    """Test that an empty form raises MissingFile."""
    handler = UploadHandler(mock_store, handler_settings)

    with pytest.raises(MissingFile):
        handler.build_request(FormData([("note", "no file")]))


def test_build_request_oversize(mock_store, handler_settings):
    """Test that files over the ceiling are refused before the store."""
    handler = UploadHandler(mock_store, handler_settings)

    with pytest.raises(PayloadTooLarge):
        handler.build_request(_form_with_file(b"x" * (1024 * 1024 + 1)))

    mock_store.add.assert_not_called()


@pytest.mark.asyncio
async def test_upload_builds_descriptor(mock_store, handler_settings):
    """Test that the descriptor uses the store CID and the uploaded size."""
    handler = UploadHandler(mock_store, handler_settings)
    request = UploadRequest(
        file_data=io.BytesIO(b"0123456789"), original_name="note.txt", mime_type="text/plain", size_bytes=10
    )

    descriptor = await handler.upload(request)

    assert descriptor.content_id == "QmMockCid"
    assert descriptor.original_name == "note.txt"
    assert descriptor.size_bytes == 10
    assert descriptor.source_url == "https://gw.example/ipfs/QmMockCid"
    assert descriptor.api_url == "http://node:5001/api/v0/cat?arg=QmMockCid"
    mock_store.add.assert_awaited_once_with(request.file_data, "note.txt", "text/plain")


@pytest.mark.asyncio
async def test_upload_propagates_store_errors(mock_store, handler_settings):
    """Test that store failures are not swallowed or retried."""
    mock_store.add.side_effect = StoreRejected("repo is read-only", operation="add")
    handler = UploadHandler(mock_store, handler_settings)
    request = UploadRequest(file_data=io.BytesIO(b"x"), original_name="x", size_bytes=1)

    with pytest.raises(StoreRejected):
        await handler.upload(request)

    assert mock_store.add.await_count == 1


@pytest.mark.parametrize(
    "content_id",
    ["QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG", "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"],
)
def test_validate_accepts_cids(content_id):
    """Test that CIDv0 and CIDv1 strings pass validation."""
    assert validate_content_id(content_id).content_id == content_id


@pytest.mark.parametrize("content_id", ["", "../etc/passwd", "Qm abc", "Qm" + "a" * 200])
def test_validate_rejects_malformed(content_id):
    """Test that identifiers that cannot be CIDs raise NotFound."""
    with pytest.raises(NotFound):
        validate_content_id(content_id)


@pytest.mark.asyncio
async def test_stream_response_headers_and_body(handler_settings):
    """Test the fixed content type, disposition header and streamed body."""
    closed = []

    async def chunks():
        yield b"abc"
        yield b"def"

    async def on_close():
        closed.append(True)

    store = MagicMock()
    store.open_stream = AsyncMock(return_value=ContentStream("QmAbc", chunks(), on_close))
    handler = RetrievalHandler(store, handler_settings)

    response = await handler.stream_response("QmAbc")
    body = b"".join([chunk async for chunk in response.body_iterator])

    assert body == b"abcdef"
    assert response.media_type == "text/plain"
    assert response.headers["content-disposition"] == 'inline; filename="QmAbc.txt"'
    assert closed == [True]


@pytest.mark.asyncio
async def test_stream_failure_mid_transfer_ends_body(handler_settings):
    """Test that a store error after the first chunk ends the body and closes the stream."""
    closed = []

    async def chunks():
        yield b"partial"
        raise StoreRejected("exit status 1", content_id="QmAbc", operation="cat", exit_code=1)

    async def on_close():
        closed.append(True)

    store = MagicMock()
    store.open_stream = AsyncMock(return_value=ContentStream("QmAbc", chunks(), on_close))
    handler = RetrievalHandler(store, handler_settings)

    response = await handler.stream_response("QmAbc")
    body = b"".join([chunk async for chunk in response.body_iterator])

    assert body == b"partial"
    assert closed == [True]


@pytest.mark.asyncio
async def test_stream_response_closes_stream_without_body_consumer(handler_settings):
    """Test that the response's background task closes a stream nobody read."""
    closed = []

    async def chunks():
        yield b"never read"

    async def on_close():
        closed.append(True)

    store = MagicMock()
    store.open_stream = AsyncMock(return_value=ContentStream("QmAbc", chunks(), on_close))
    handler = RetrievalHandler(store, handler_settings)

    response = await handler.stream_response("QmAbc")
    await response.background()

    assert closed == [True]
