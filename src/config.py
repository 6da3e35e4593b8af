"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (prefix MCP_) or a local .env file.

Trust material lives here:
- MCP_API_KEYS: JSON list of accepted API keys, e.g. '["key-1", "key-2"]'
- MCP_CLIENTS: JSON object mapping OAuth2 client_id to client_secret
- MCP_JWT_SECRET_KEY: the symmetric key used to sign and verify access tokens

Misconfiguration is fatal: constructing Settings raises a ValidationError, so
the server refuses to start instead of failing at request time.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# PyJWT warns about HMAC keys shorter than 32 bytes.
DEFAULT_JWT_SECRET = "dev-only-signing-secret-change-me-in-production"


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the MCP_ prefix.
    For example, `port` reads from MCP_PORT, `jwt_secret_key` reads
    from MCP_JWT_SECRET_KEY.
    """

    # --- Server settings ---

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    # Path of the protected MCP endpoint. Everything else (token endpoint,
    # revocation, health) is served without authentication.
    mcp_path: str = "/mcp"

    # Browser origins allowed to call the server (CORS). ["*"] allows any.
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # --- TLS ---

    use_https: bool = False
    ssl_certfile: Path = Path("certs/server.crt")
    ssl_keyfile: Path = Path("certs/server.key")

    # --- Static API keys ---

    api_keys: list[str] = Field(
        default_factory=lambda: ["mcp-secret-key-12345"], min_length=1
    )

    # --- OAuth2 client credentials ---

    # client_id -> client_secret. Fixed for the process lifetime.
    clients: dict[str, str] = Field(
        default_factory=lambda: {"mcp-client": "mcp-client-secret"}, min_length=1
    )

    # --- Access token signing ---

    # Shared by the token issuer and the credential validator.
    # Default is for local development only - NEVER use this in production.
    jwt_secret_key: str = Field(default=DEFAULT_JWT_SECRET, min_length=1)
    jwt_algorithm: str = "HS256"

    token_lifetime_seconds: int = Field(default=3600, gt=0)

    # How often issuance may evict expired entries from the token registry.
    # 0 disables eviction entirely.
    token_sweep_interval_seconds: int = Field(default=300, ge=0)

    model_config = {
        "env_prefix": "MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("api_keys")
    @classmethod
    def _no_blank_api_keys(cls, value: list[str]) -> list[str]:
        if any(not key for key in value):
            raise ValueError("API keys must be non-empty strings")
        return value

    @field_validator("clients")
    @classmethod
    def _no_blank_client_credentials(cls, value: dict[str, str]) -> dict[str, str]:
        for client_id, client_secret in value.items():
            if not client_id or not client_secret:
                raise ValueError("client_id and client_secret must be non-empty")
        return value


# Singleton instance: import this from other modules.
# Created once at module load time, reads environment variables immediately.
settings = Settings()
