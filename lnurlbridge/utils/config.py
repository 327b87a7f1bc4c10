"""Runtime configuration.

Pydantic-based settings shared by the server and the client commands.

Environment Variables:
- LNURLBRIDGE_RPC_PATH: Core Lightning RPC socket (default: ~/.lightning/testnet4/lightning-rpc)
- LNURLBRIDGE_NODE_ADDRESS: Advertised node address as host:port (default: first getinfo address)
- LNURLBRIDGE_CALLBACK_BASE_URL: Public base URL used to build callback URLs
- LNURLBRIDGE_HOST / LNURLBRIDGE_PORT: HTTP bind address (default: 0.0.0.0:3000)
- LNURLBRIDGE_TOKEN_TTL_SECONDS: Lifetime of an unanswered challenge (default: 600)
- LNURLBRIDGE_TOKEN_CAPACITY: Max outstanding challenges (default: 10000)
- LNURLBRIDGE_PAYMENT_WORKERS: Concurrent withdrawal payment workers (default: 4)
- LNURLBRIDGE_PAYMENT_QUEUE_SIZE: Accepted withdrawals waiting for a worker (default: 100)
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """lnurlbridge settings.

    All settings can be overridden via environment variables with prefix
    ``LNURLBRIDGE_`` or a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="LNURLBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Node
    rpc_path: Path = Field(
        default=Path.home() / ".lightning" / "testnet4" / "lightning-rpc",
        description="Path to the Core Lightning JSON-RPC unix socket",
    )
    node_address: str | None = Field(
        default=None,
        description="Advertised host:port of the node; defaults to the first getinfo address",
    )

    # HTTP server
    host: str = Field(default="0.0.0.0", description="Bind host for the HTTP server")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port for the HTTP server")
    callback_base_url: str = Field(
        default="http://127.0.0.1:3000",
        description="Public base URL that wallets use to reach the callbacks",
    )

    # Challenge tokens
    token_ttl_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Seconds an issued challenge stays answerable",
    )
    token_capacity: int = Field(
        default=10_000,
        ge=1,
        description="Maximum outstanding challenges before the oldest are evicted",
    )

    # Withdraw payments
    payment_workers: int = Field(default=4, ge=1, le=64, description="Payment worker tasks")
    payment_queue_size: int = Field(
        default=100, ge=1, description="Accepted withdrawals waiting for a worker"
    )

    # Client
    http_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for client HTTP round-trips"
    )

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    dev_mode: bool = Field(default=True, description="Colourful console log output")

    @field_validator("callback_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Callback URLs are built by appending ``/<endpoint>``."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    def callback_url(self, endpoint: str) -> str:
        return f"{self.callback_base_url}/{endpoint}"


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
