"""
Shared test fixtures for the MCP server test suite.

Key fixtures:
- test_settings: Settings with known trust material (no .env, no env surprises)
- registry / validator / issuer / gateway: fresh auth components per test,
  all sharing the same registry
- make_token: factory for hand-crafted JWTs (forged, expired, missing claims)
- http_client: an httpx.AsyncClient wired to a fresh ASGI app (in-memory,
  no network needed) with its own token registry

Testing approach:
- test_registry.py / test_auth.py / test_issuer.py / test_gateway.py: unit
  tests for each component in isolation
- test_server.py: integration tests through HTTP (token endpoint, revocation,
  and the protected MCP endpoint)
"""

import asyncio
import datetime
import uuid

import httpx
import jwt
import pytest

from src.auth import CredentialValidator
from src.config import Settings
from src.gateway import AuthGateway
from src.issuer import TokenIssuer
from src.registry import TokenRegistry
from src.server import create_app
from tests.helpers import (
    TEST_ALGORITHM,
    TEST_API_KEY,
    TEST_CLIENT_ID,
    TEST_CLIENT_SECRET,
    TEST_SECRET,
)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        api_keys=[TEST_API_KEY],
        clients={TEST_CLIENT_ID: TEST_CLIENT_SECRET},
        jwt_secret_key=TEST_SECRET,
        jwt_algorithm=TEST_ALGORITHM,
    )


@pytest.fixture
def registry() -> TokenRegistry:
    return TokenRegistry()


@pytest.fixture
def validator(registry) -> CredentialValidator:
    return CredentialValidator(
        api_keys=[TEST_API_KEY],
        secret=TEST_SECRET,
        registry=registry,
        algorithm=TEST_ALGORITHM,
    )


@pytest.fixture
def issuer(registry) -> TokenIssuer:
    return TokenIssuer(
        registry,
        clients={TEST_CLIENT_ID: TEST_CLIENT_SECRET},
        secret=TEST_SECRET,
        algorithm=TEST_ALGORITHM,
    )


@pytest.fixture
def gateway(validator) -> AuthGateway:
    return AuthGateway(validator)


# ---------------------------------------------------------------------------
# Token factory fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to hand-craft JWT tokens, bypassing the issuer.

    Useful for tokens the issuer would never produce: wrong secret, already
    expired, missing claims. Such tokens are not in any registry unless the
    test puts them there.
    """

    def _make_token(
        client_id: str | None = TEST_CLIENT_ID,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_seconds: float = 3600,
        include_exp: bool = True,
        extra_claims: dict | None = None,
    ) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {"iat": now, "scope": "mcp:tools", "jti": uuid.uuid4().hex}

        if client_id is not None:
            payload["client_id"] = client_id

        if include_exp:
            payload["exp"] = now + datetime.timedelta(seconds=exp_seconds)

        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


# ---------------------------------------------------------------------------
# In-memory HTTP client
# ---------------------------------------------------------------------------
@pytest.fixture
async def http_client(test_settings):
    """
    httpx.AsyncClient bound to a fresh ASGI app.

    The ASGI lifespan must be running before MCP requests work (it starts the
    StreamableHTTP session manager's task group), so we drive it manually.
    """
    app = create_app(test_settings, TokenRegistry())

    startup_complete = asyncio.Event()
    shutdown_triggered = asyncio.Event()

    async def receive():
        if not startup_complete.is_set():
            startup_complete.set()
            return {"type": "lifespan.startup"}
        await shutdown_triggered.wait()
        return {"type": "lifespan.shutdown"}

    async def send(message):
        pass

    scope = {"type": "lifespan", "asgi": {"version": "3.0"}}
    lifespan_task = asyncio.create_task(app(scope, receive, send))

    await startup_complete.wait()
    await asyncio.sleep(0.1)  # Give the task group time to initialize

    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    yield client

    await client.aclose()
    shutdown_triggered.set()
    await lifespan_task

