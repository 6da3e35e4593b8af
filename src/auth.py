"""
Credential validation for the protected MCP endpoint.

Two independent ways to authenticate:
- **API key**: an opaque string sent in the `x-api-key` header, compared by
  exact match against the configured key set
- **OAuth2 bearer token**: a JWT issued by our own token endpoint
  (client credentials grant), sent as `Authorization: Bearer <token>`

A bearer token is trusted only if all three checks pass:
1. The signature verifies against the server's signing secret
2. The `exp` claim has not passed
3. The token is still listed in the token registry (not revoked)

Security concepts demonstrated:
- **Defense in depth**: registry membership lets us revoke a token that is
  still well-signed and unexpired
- **No oracle**: every bearer failure (forged, malformed, expired, revoked)
  produces the same rejection, so callers can't probe which check failed.
  The specific cause is logged server-side only.
- **Fail closed**: nothing presented, or nothing valid, means rejected

Token structure (JWT payload):
    {
        "client_id": "mcp-client",    # Which OAuth2 client the token was issued to
        "scope": "mcp:tools",          # Fixed scope, informational only
        "iat": 1738796400,             # Issued at (Unix timestamp)
        "exp": 1738800000,             # Expiry (Unix timestamp)
        "jti": "5c0f..."               # Unique token id
    }
"""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum

import jwt

from src.registry import TokenStore

logger = logging.getLogger("mcp-server.auth")

INVALID_TOKEN = "invalid_or_expired_token"
AUTHENTICATION_REQUIRED = "authentication_required"

INVALID_TOKEN_MESSAGE = "Invalid or expired OAuth2 token"
AUTHENTICATION_REQUIRED_MESSAGE = (
    "Authentication required. Provide either 'x-api-key' header "
    "or 'Authorization: Bearer' token."
)


class AuthMethod(str, Enum):
    """How a request proved its identity."""

    API_KEY = "apikey"
    OAUTH2 = "oauth2"


@dataclass(frozen=True)
class AuthOutcome:
    """
    Result of one authentication attempt.

    Either `method` is set (authenticated) or `reason`/`message` are set
    (rejected), never both.

    Attributes:
        method: The credential type that succeeded
        reason: Machine-checkable rejection code
        message: Human-readable rejection message, safe to return to the caller
        client_id: The OAuth2 client the bearer token was issued to
    """

    method: AuthMethod | None = None
    reason: str | None = None
    message: str | None = None
    client_id: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.method is not None

    @classmethod
    def success(cls, method: AuthMethod, client_id: str | None = None) -> "AuthOutcome":
        return cls(method=method, client_id=client_id)

    @classmethod
    def rejected(cls, reason: str, message: str) -> "AuthOutcome":
        return cls(reason=reason, message=message)


def _matches(presented: str, expected: str) -> bool:
    # compare_digest only accepts ASCII str, so compare the encoded bytes.
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


class CredentialValidator:
    """
    Checks a presented API key or bearer token against the trust material.

    Read-only with respect to the registry: validation never inserts or
    removes tokens.
    """

    def __init__(
        self,
        api_keys: list[str],
        secret: str,
        registry: TokenStore,
        algorithm: str = "HS256",
    ):
        self._api_keys = list(api_keys)
        self._secret = secret
        self._algorithm = algorithm
        self._registry = registry

    def validate(
        self,
        api_key: str | None = None,
        bearer_token: str | None = None,
    ) -> AuthOutcome:
        """
        Authenticate one request.

        The API key is checked first; a wrong key is not itself a rejection,
        the bearer token still gets its chance.

        Args:
            api_key: Value of the `x-api-key` header, if any
            bearer_token: Token extracted from `Authorization: Bearer <token>`, if any

        Returns:
            AuthOutcome describing the method used or the rejection
        """
        if api_key and any(_matches(api_key, key) for key in self._api_keys):
            return AuthOutcome.success(AuthMethod.API_KEY)

        if bearer_token:
            return self._validate_bearer(bearer_token)

        return AuthOutcome.rejected(AUTHENTICATION_REQUIRED, AUTHENTICATION_REQUIRED_MESSAGE)

    def _validate_bearer(self, token: str) -> AuthOutcome:
        # PyJWT parses header.payload.signature, verifies the HMAC with our
        # secret and checks "exp" against the current time. Every failure is
        # an InvalidTokenError subclass.
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat", "client_id"]},
            )
        except jwt.InvalidTokenError as e:
            logger.debug("Bearer token rejected: %s", e)
            return AuthOutcome.rejected(INVALID_TOKEN, INVALID_TOKEN_MESSAGE)

        if token not in self._registry:
            logger.debug("Bearer token rejected: not in registry")
            return AuthOutcome.rejected(INVALID_TOKEN, INVALID_TOKEN_MESSAGE)

        client_id = payload.get("client_id")
        return AuthOutcome.success(
            AuthMethod.OAUTH2,
            client_id=client_id if isinstance(client_id, str) else None,
        )
