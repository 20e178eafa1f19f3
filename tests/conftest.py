"""Pytest configuration and shared fixtures."""

import shlex
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from casgateway.core.config import settings
from casgateway.main import create_app
from casgateway.store.ipfs_cli import IpfsCliStore
from casgateway.store.ipfs_http import IpfsHttpStore
from tests.ipfs_fakes import FakeIpfsNode

FAKE_IPFS_SCRIPT = Path(__file__).parent / "fake_ipfs.py"


@pytest.fixture
def fake_node():
    """Fresh fake IPFS node."""
    return FakeIpfsNode()


@pytest.fixture
def http_store(fake_node):
    """HTTP store adapter wired to the fake node."""
    return IpfsHttpStore(
        "http://ipfs.test:5001",
        timeout=2.0,
        max_concurrency=4,
        chunk_size=4,
        transport=fake_node.transport(),
    )


@pytest.fixture
def ipfs_repo(tmp_path):
    """Empty repository directory for the fake ipfs binary."""
    repo = tmp_path / "ipfs-repo"
    repo.mkdir()
    return repo


@pytest.fixture
def fake_ipfs_command():
    """Command line running tests/fake_ipfs.py with the current interpreter."""
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(FAKE_IPFS_SCRIPT))}"


@pytest.fixture
def cli_store(fake_ipfs_command, ipfs_repo):
    """CLI store adapter running the fake ipfs binary."""
    return IpfsCliStore(
        fake_ipfs_command,
        ipfs_path=str(ipfs_repo),
        timeout=5.0,
        max_concurrency=4,
        chunk_size=4,
    )


@pytest.fixture
def gateway_settings(monkeypatch):
    """Pin the settings the API tests rely on."""
    monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 1)
    monkeypatch.setattr(settings, "IPFS_API_URL", "http://ipfs.test:5001")
    monkeypatch.setattr(settings, "IPFS_GATEWAY_URL", "http://localhost:8080")
    monkeypatch.setattr(settings, "EXPOSE_STORE_DIAGNOSTICS", True)
    monkeypatch.setattr(settings, "STORE_STARTUP_ATTEMPTS", 0)
    return settings


@pytest.fixture
def client(http_store, gateway_settings):
    """Test client for an app backed by the fake HTTP node."""
    app = create_app(content_store=http_store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def cli_client(cli_store, gateway_settings):
    """Test client for an app backed by the fake ipfs binary."""
    app = create_app(content_store=cli_store)
    with TestClient(app) as test_client:
        yield test_client
