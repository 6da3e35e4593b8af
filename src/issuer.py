"""
OAuth2 client credentials token issuance and revocation.

The server acts as its own authorization server: a client exchanges its
client_id/client_secret for a short-lived signed JWT, then presents that JWT
as a Bearer token on the MCP endpoint.

Every issued token is registered in the token registry; revocation removes it
again. Tokens are never refreshed: clients simply request a new one.
"""

import logging
import secrets
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt

from src.registry import TokenStore

logger = logging.getLogger("mcp-server.issuer")

CLIENT_CREDENTIALS_GRANT = "client_credentials"
TOKEN_SCOPE = "mcp:tools"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClientCredentialsError(Exception):
    """
    Raised when a token request is refused.

    Carries the OAuth2 error code (RFC 6749 section 5.2) and the HTTP status
    the token endpoint should answer with.

    Attributes:
        error: OAuth2 error code, e.g. "invalid_client"
        description: Human-readable error_description
        status_code: HTTP status code (400 or 401)
    """

    def __init__(self, error: str, description: str, status_code: int = 400):
        self.error = error
        self.description = description
        self.status_code = status_code
        super().__init__(f"{error}: {description}")

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "error_description": self.description}


@dataclass(frozen=True)
class TokenGrant:
    """Successful token response body."""

    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    scope: str = TOKEN_SCOPE

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TokenIssuer:
    """
    Mints access tokens for configured clients and records them in the registry.

    Args:
        registry: Where issued tokens are recorded (shared with the validator)
        clients: client_id -> client_secret
        secret: JWT signing key
        algorithm: JWT signing algorithm
        lifetime_seconds: Token lifetime, also returned as `expires_in`
        sweep_interval_seconds: Minimum time between evictions of expired
            registry entries; 0 disables eviction
        clock: Returns the current time as an aware datetime
    """

    def __init__(
        self,
        registry: TokenStore,
        clients: dict[str, str],
        secret: str,
        algorithm: str = "HS256",
        lifetime_seconds: int = 3600,
        sweep_interval_seconds: int = 300,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._registry = registry
        self._clients = dict(clients)
        self._secret = secret
        self._algorithm = algorithm
        self._lifetime = timedelta(seconds=lifetime_seconds)
        self._sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._clock = clock
        self._last_sweep: datetime | None = None
        self._sweep_lock = threading.Lock()

    def issue_token(
        self,
        grant_type: Any,
        client_id: Any,
        client_secret: Any,
    ) -> TokenGrant:
        """
        Exchange client credentials for a new access token.

        Each call issues a distinct token, so one client may hold several
        valid tokens at once.

        Raises:
            ClientCredentialsError: unsupported_grant_type (400) or invalid_client (401)
        """
        if grant_type != CLIENT_CREDENTIALS_GRANT:
            raise ClientCredentialsError(
                "unsupported_grant_type",
                "Only client_credentials grant type is supported",
                status_code=400,
            )

        if not self._authenticate_client(client_id, client_secret):
            # Same answer whether the id or the secret was wrong.
            logger.warning(
                "Token request rejected",
                extra={"auth_data": {"decision": "rejected", "reason": "invalid_client"}},
            )
            raise ClientCredentialsError(
                "invalid_client", "Invalid client credentials", status_code=401
            )

        issued_at = self._clock()
        expires_at = issued_at + self._lifetime
        payload = {
            "client_id": client_id,
            "scope": TOKEN_SCOPE,
            "iat": issued_at,
            "exp": expires_at,
            "jti": uuid.uuid4().hex,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)

        self._registry.register(token, expires_at)
        self._maybe_sweep(issued_at)

        logger.info(
            "Access token issued",
            extra={
                "auth_data": {
                    "client_id": client_id,
                    "expires_at": expires_at.isoformat(),
                    "decision": "issued",
                }
            },
        )
        return TokenGrant(
            access_token=token,
            expires_in=int(self._lifetime.total_seconds()),
        )

    def revoke_token(self, token: str) -> dict[str, bool]:
        """Revoke a token. Always succeeds, known token or not."""
        self._registry.revoke(token)
        logger.info("Access token revoked", extra={"auth_data": {"decision": "revoked"}})
        return {"revoked": True}

    def _authenticate_client(self, client_id: Any, client_secret: Any) -> bool:
        if not isinstance(client_id, str) or not isinstance(client_secret, str):
            return False
        expected = self._clients.get(client_id)
        if expected is None:
            return False
        return secrets.compare_digest(
            client_secret.encode("utf-8"), expected.encode("utf-8")
        )

    def _maybe_sweep(self, now: datetime) -> None:
        if not self._sweep_interval:
            return
        with self._sweep_lock:
            if self._last_sweep is not None and now - self._last_sweep < self._sweep_interval:
                return
            self._last_sweep = now
        removed = self._registry.sweep_expired(now)
        if removed:
            logger.info("Evicted %d expired tokens from registry", removed)
