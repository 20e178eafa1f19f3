"""
Content store adapters.

One ``ContentStore`` interface with two transports to an IPFS node:
the HTTP RPC API and the ``ipfs`` command line binary.
"""

from casgateway.store.base import ContentStore, ContentStream
from casgateway.store.factory import create_content_store, wait_for_store
from casgateway.store.ipfs_cli import IpfsCliStore
from casgateway.store.ipfs_http import IpfsHttpStore

__all__ = [
    "ContentStore",
    "ContentStream",
    "IpfsCliStore",
    "IpfsHttpStore",
    "create_content_store",
    "wait_for_store",
]
