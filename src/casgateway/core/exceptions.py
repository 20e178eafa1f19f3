"""Error taxonomy for the content gateway.

Every failure that reaches a client is a ``GatewayError`` subclass. The
class decides the machine-readable ``code`` and HTTP status, the
instance carries the diagnostic detail and the context it happened in.
"""

from typing import Any, Dict, Optional

# Human-readable error titles per store operation
OPERATION_TITLES = {
    "add": "Failed to upload file to IPFS",
    "cat": "Failed to retrieve file from IPFS",
    "stat": "Failed to read file metadata from IPFS",
    "pin": "Failed to pin file in IPFS",
    "unpin": "Failed to unpin file in IPFS",
    "health": "IPFS API test failed",
    "network": "Failed to read IPFS network info",
}


class GatewayError(Exception):
    """Base exception for the content gateway."""

    code = "gateway_error"
    status_code = 500
    title = "Internal server error"

    def __init__(
        self,
        details: str,
        *,
        content_id: Optional[str] = None,
        operation: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(details)
        self.details = details
        self.content_id = content_id
        self.operation = operation
        self.exit_code = exit_code

    @property
    def error(self) -> str:
        """Human-readable message for the response body."""
        return OPERATION_TITLES.get(self.operation or "", self.title)

    def to_dict(self, expose_diagnostics: bool = True) -> Dict[str, Any]:
        """Serialize to the JSON error body."""
        body: Dict[str, Any] = {
            "error": self.error,
            "code": self.code,
            "details": self.details if expose_diagnostics else self.public_details(),
        }
        if self.content_id is not None:
            body["contentId"] = self.content_id
        if self.exit_code is not None:
            body["exitCode"] = self.exit_code
        return body

    def public_details(self) -> str:
        """Details safe to show when store diagnostics are hidden."""
        return self.title


class MissingFile(GatewayError):
    """Upload request carries no file field."""

    code = "missing_file"
    status_code = 400
    title = "No file provided"

    @property
    def error(self) -> str:
        return self.title

    def public_details(self) -> str:
        return self.details


class PayloadTooLarge(GatewayError):
    """Upload exceeds the configured size ceiling."""

    code = "payload_too_large"
    status_code = 413
    title = "File too large"

    @property
    def error(self) -> str:
        return self.title

    def public_details(self) -> str:
        return self.details


class NotFound(GatewayError):
    """Store does not know the content identifier, or it is malformed."""

    code = "not_found"
    status_code = 404
    title = "Content not found"

    @property
    def error(self) -> str:
        return self.title

    def public_details(self) -> str:
        return f"{self.content_id}: content not found"


class StoreError(GatewayError):
    """Base for failures of the content store itself."""


class StoreUnavailable(StoreError):
    """Store cannot be reached (connection refused, binary missing)."""

    code = "store_unavailable"
    status_code = 503
    title = "Content store unavailable"


class StoreRejected(StoreError):
    """Store answered with a non-success status or exit code."""

    code = "store_rejected"
    status_code = 500
    title = "Content store rejected the request"


class StoreTimeout(StoreError):
    """Store call or slot acquisition exceeded the configured timeout."""

    code = "store_timeout"
    status_code = 504
    title = "Content store timed out"
