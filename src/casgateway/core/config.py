"""Configuration management for the content gateway."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "cas-gateway"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = ""  # "json" or "text", empty = text when ENV is local, json otherwise

    # Content store transport
    STORE_TRANSPORT: str = "http"  # "http" (Kubo RPC API) or "cli" (ipfs binary)
    IPFS_API_URL: str = "http://127.0.0.1:5001"
    IPFS_GATEWAY_URL: str = "http://localhost:8080"  # Public read gateway used in ipfsUrl
    IPFS_BINARY: str = "ipfs"  # May be a full command line, split with shlex
    IPFS_PATH: str = ""  # Repo path for the cli transport, empty = inherit environment
    IPFS_OFFLINE: bool = False  # Only serve blocks the node already holds
    PIN_ON_ADD: bool = True

    # Store resource bounds
    STORE_TIMEOUT_SECONDS: float = 30.0
    STORE_MAX_CONCURRENCY: int = 10
    STORE_STARTUP_ATTEMPTS: int = 0  # 0 = do not wait for the store at startup
    STORE_STARTUP_DELAY_SECONDS: float = 1.0

    # Upload Constraints
    MAX_UPLOAD_MB: int = 50
    MULTIPART_OVERHEAD_BYTES: int = 64 * 1024  # Envelope allowance on top of the file ceiling

    # Retrieval
    STREAM_CHUNK_SIZE: int = 65536
    RETRIEVAL_CONTENT_TYPE: str = "text/plain"

    # Routing
    FILES_ROUTE_PREFIX: str = "/api/files"

    # Include raw store diagnostics (stderr, RPC messages) in error bodies
    EXPOSE_STORE_DIAGNOSTICS: bool = True

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def max_request_bytes(self) -> int:
        """Largest request body accepted on the upload route."""
        return self.max_upload_bytes + self.MULTIPART_OVERHEAD_BYTES

    @property
    def ipfs_api_base(self) -> str:
        """IPFS_API_URL without a trailing slash."""
        return self.IPFS_API_URL.rstrip("/")

    @property
    def ipfs_gateway_base(self) -> str:
        """IPFS_GATEWAY_URL without a trailing slash."""
        return self.IPFS_GATEWAY_URL.rstrip("/")


# Singleton settings instance
settings = Settings()
