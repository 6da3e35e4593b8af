"""
Per-request authentication entry point, independent of the HTTP framework.

The transport layer hands us the request headers; we pull out whichever
credentials are present, run them through the CredentialValidator and return
the AuthOutcome unchanged. Deciding what to do with a rejection (refusing
dispatch, shaping the error) stays with the transport.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from src.auth import AuthOutcome, CredentialValidator

logger = logging.getLogger("mcp-server.gateway")

API_KEY_HEADER = "x-api-key"
AUTHORIZATION_HEADER = "authorization"
BEARER_PREFIX = "bearer "


def extract_credentials(headers: Mapping[str, str]) -> tuple[str | None, str | None]:
    """
    Pull the API key and bearer token out of request headers.

    Header names are matched case-insensitively. The Authorization value must
    start with "Bearer " (any case, exactly one space); anything else yields no
    bearer token rather than an error.

    Returns:
        (api_key, bearer_token), either of which may be None
    """
    normalized = {name.lower(): value for name, value in headers.items()}

    api_key = normalized.get(API_KEY_HEADER) or None

    bearer_token = None
    authorization = normalized.get(AUTHORIZATION_HEADER, "")
    if authorization[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX:
        bearer_token = authorization[len(BEARER_PREFIX) :] or None

    return api_key, bearer_token


class AuthGateway:
    """Authenticates requests and emits an audit event for each decision."""

    def __init__(self, validator: CredentialValidator):
        self._validator = validator

    def authenticate_request(
        self,
        headers: Mapping[str, str],
        request_id: str | None = None,
    ) -> AuthOutcome:
        api_key, bearer_token = extract_credentials(headers)
        outcome = self._validator.validate(api_key=api_key, bearer_token=bearer_token)

        if outcome.authenticated:
            logger.info(
                "Authentication successful",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "method": outcome.method.value,
                        "client_id": outcome.client_id,
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                        "decision": "authenticated",
                    }
                },
            )
        else:
            logger.warning(
                "Authentication failed",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "reason": outcome.reason,
                        "decision": "rejected",
                    }
                },
            )

        return outcome
