"""Smoke tests for the gateway error taxonomy."""

import pytest

from casgateway.core.exceptions import (
    GatewayError,
    MissingFile,
    NotFound,
    PayloadTooLarge,
    StoreError,
    StoreRejected,
    StoreTimeout,
    StoreUnavailable,
)


def test_exception_hierarchy():
    """Test that all exceptions inherit from GatewayError."""
    assert issubclass(MissingFile, GatewayError)
    assert issubclass(PayloadTooLarge, GatewayError)
    assert issubclass(NotFound, GatewayError)
    assert issubclass(StoreUnavailable, StoreError)
    assert issubclass(StoreRejected, StoreError)
    assert issubclass(StoreTimeout, StoreError)
    assert issubclass(StoreError, GatewayError)


@pytest.mark.parametrize(
    "exc_cls, code, status_code",
    [
        (MissingFile, "missing_file", 400),
        (PayloadTooLarge, "payload_too_large", 413),
        (NotFound, "not_found", 404),
        (StoreUnavailable, "store_unavailable", 503),
        (StoreRejected, "store_rejected", 500),
        (StoreTimeout, "store_timeout", 504),
    ],
)
def test_codes_and_statuses(exc_cls, code, status_code):
    """Test the machine-readable code and HTTP status of each error."""
    assert exc_cls.code == code
    assert exc_cls.status_code == status_code


def test_error_title_follows_operation():
    """Test that store errors are titled by the operation that failed."""
    assert StoreUnavailable("x", operation="add").error == "Failed to upload file to IPFS"
    assert StoreRejected("x", operation="cat").error == "Failed to retrieve file from IPFS"
    assert StoreTimeout("x").error == "Content store timed out"
    assert NotFound("x", operation="cat").error == "Content not found"


def test_to_dict_optional_fields():
    """Test that contentId and exitCode appear only when known."""
    bare = StoreRejected("boom", operation="add").to_dict()
    assert bare == {"error": "Failed to upload file to IPFS", "code": "store_rejected", "details": "boom"}

    full = StoreRejected("boom", content_id="QmX", operation="cat", exit_code=1).to_dict()
    assert full["contentId"] == "QmX"
    assert full["exitCode"] == 1


def test_to_dict_hides_diagnostics():
    """Test that store diagnostics are replaced when not exposed."""
    exc = StoreUnavailable("dial tcp 10.0.0.7:5001: connection refused", operation="add")

    body = exc.to_dict(expose_diagnostics=False)

    assert "10.0.0.7" not in body["details"]
    assert NotFound("QmX: /data/ipfs leaked", content_id="QmX").to_dict(False)["details"] == "QmX: content not found"
