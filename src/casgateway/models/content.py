"""Content data models."""

from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StoredObject(BaseModel):
    """Raw answer of the content store to an add call."""

    model_config = ConfigDict(frozen=True)

    content_id: str
    name: str
    store_size: Optional[int] = None


class ContentDescriptor(BaseModel):
    """Result of a successful upload.

    ``content_id`` is whatever the store derived from the content; it is
    never generated or rewritten by the gateway.
    """

    model_config = ConfigDict(frozen=True)

    content_id: str = Field(..., min_length=1)
    original_name: str
    size_bytes: int = Field(..., ge=0)
    source_url: str
    api_url: str


@dataclass(frozen=True)
class UploadRequest:
    """A single file handed to the upload handler."""

    file_data: BinaryIO
    original_name: str
    size_bytes: int
    mime_type: str = "application/octet-stream"


class RetrievalRequest(BaseModel):
    """Identifier of the content to stream back."""

    content_id: str


class ContentStat(BaseModel):
    """Store-side metadata for a content identifier."""

    content_id: str
    size: int
    cumulative_size: Optional[int] = None
    blocks: Optional[int] = None
    type: Optional[str] = None


class UploadResponse(BaseModel):
    """Response model for file upload."""

    success: bool = True
    hash: str
    name: str
    size: int
    ipfsUrl: str
    apiUrl: str

    @classmethod
    def from_descriptor(cls, descriptor: ContentDescriptor) -> "UploadResponse":
        return cls(
            hash=descriptor.content_id,
            name=descriptor.original_name,
            size=descriptor.size_bytes,
            ipfsUrl=descriptor.source_url,
            apiUrl=descriptor.api_url,
        )


class MetadataResponse(BaseModel):
    """Response model for the metadata route."""

    hash: str
    size: int
    cumulativeSize: Optional[int] = None
    blocks: Optional[int] = None
    type: Optional[str] = None


class PinResponse(BaseModel):
    """Response model for pin and unpin routes."""

    success: bool = True
    hash: str
    pinned: bool


class StoreProbeResponse(BaseModel):
    """Response model for the store connectivity probe."""

    success: bool = True
    ipfsApiUrl: str
    ipfsVersion: Dict[str, Any]


class NetworkInfo(BaseModel):
    """Identity and connectivity of the store's node."""

    node_id: str
    addresses: List[str] = Field(default_factory=list)
    agent_version: Optional[str] = None
    peers: int = 0


class NetworkResponse(BaseModel):
    """Response model for the node network route."""

    success: bool = True
    nodeId: str
    addresses: List[str]
    peers: int
    agentVersion: Optional[str] = None

    @classmethod
    def from_info(cls, info: NetworkInfo) -> "NetworkResponse":
        return cls(
            nodeId=info.node_id,
            addresses=info.addresses,
            peers=info.peers,
            agentVersion=info.agent_version,
        )
