"""
Secured MCP server: FastMCP tools behind API key and OAuth2 authentication.

This module wires everything together:
- Three tools: get_server_time, echo, calculate
- An OAuth2 token endpoint (client credentials grant) and a revocation endpoint
- Authentication on the MCP endpoint: x-api-key header OR Authorization: Bearer
- Structured JSON logging for all auth decisions
- CORS for browser-based MCP clients
- Streamable HTTP transport in stateless mode (no session affinity needed)

Architecture:
    The auth flow for every request to /mcp:

    1. AuthGatewayMiddleware (Starlette) sees the HTTP request first
    2. AuthGateway extracts the API key / bearer token from the headers and
       asks the CredentialValidator for an AuthOutcome
    3. Rejected: we answer with a JSON-RPC "invalid request" error and the MCP
       server never sees the message
    4. Authenticated: the outcome is attached to request.state and the request
       is forwarded to FastMCP
    5. ToolAuditMiddleware (FastMCP) logs every tools/list and tools/call with
       the auth method, and refuses to dispatch if no outcome is attached

    The token registry is created once per app and injected into both the
    issuer (which writes it) and the validator (which reads it).

Running the server:
    uv run python -m src.server

    This starts the server on http://0.0.0.0:3000 with:
    - MCP endpoint at /mcp (Streamable HTTP)
    - Token endpoint at /oauth/token, revocation at /oauth/revoke
    - Health check at /health
"""

import json
import logging
import sys
import uuid
from typing import Any, Sequence

from fastmcp import FastMCP
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import INVALID_REQUEST, CallToolRequestParams, ListToolsRequest
from starlette.middleware import Middleware as ASGIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from src import tools
from src.auth import AuthOutcome, CredentialValidator
from src.config import DEFAULT_JWT_SECRET, Settings, settings
from src.gateway import AuthGateway
from src.issuer import ClientCredentialsError, TokenIssuer
from src.registry import TokenRegistry, TokenStore

SERVER_NAME = "secured-mcp-server"
SERVER_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO",
         "logger": "mcp-server.gateway", "message": "Authentication successful",
         "request_id": "1a2b3c4d", "method": "oauth2", "client_id": "mcp-client"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge structured fields passed via logger.info("msg", extra={"auth_data": {...}})
        if hasattr(record, "auth_data"):
            log_entry.update(record.auth_data)
        return json.dumps(log_entry, default=str)


handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(JSONLogFormatter())

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[handler],
)
logger = logging.getLogger("mcp-server")


# ---------------------------------------------------------------------------
# HTTP-level authentication
# ---------------------------------------------------------------------------


async def _jsonrpc_id(request: Request) -> Any:
    """Best-effort JSON-RPC id of the rejected message, so clients can correlate it."""
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("id"), (str, int)):
        return body["id"]
    return None


class AuthGatewayMiddleware(BaseHTTPMiddleware):
    """
    Authenticates every request to the MCP endpoint before FastMCP sees it.

    Rejections never reach a tool: the response is a JSON-RPC error with code
    INVALID_REQUEST and the generic message from the AuthOutcome, so an
    expired, revoked and forged token all look the same to the caller.
    """

    def __init__(self, app: ASGIApp, gateway: AuthGateway, protected_path: str = "/mcp"):
        super().__init__(app)
        self.gateway = gateway
        self.protected_path = protected_path.rstrip("/")

    def _is_protected(self, path: str) -> bool:
        return path == self.protected_path or path.startswith(self.protected_path + "/")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self._is_protected(request.url.path) or request.method == "OPTIONS":
            return await call_next(request)

        request_id = str(uuid.uuid4())[:8]
        outcome = self.gateway.authenticate_request(request.headers, request_id=request_id)

        if outcome.authenticated:
            request.state.auth_outcome = outcome
            return await call_next(request)

        return JSONResponse(
            {
                "jsonrpc": "2.0",
                "id": await _jsonrpc_id(request),
                "error": {"code": INVALID_REQUEST, "message": outcome.message},
            },
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )


# ---------------------------------------------------------------------------
# MCP-level audit
# ---------------------------------------------------------------------------


class ToolAuditMiddleware(Middleware):
    """
    Logs every tool listing and tool call together with the auth method.

    The authentication decision itself is made by AuthGatewayMiddleware; this
    hook only reads it back. If a request somehow arrives without an
    authenticated outcome attached, it is denied (fail closed).
    """

    def _auth_outcome(self) -> AuthOutcome:
        try:
            request = get_http_request()
        except RuntimeError:
            raise PermissionError("Access denied: request was not authenticated")

        outcome = getattr(request.state, "auth_outcome", None)
        if not isinstance(outcome, AuthOutcome) or not outcome.authenticated:
            raise PermissionError("Access denied: request was not authenticated")
        return outcome

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        outcome = self._auth_outcome()
        logger.info(
            "Authenticated tools/list request",
            extra={"auth_data": {"method": outcome.method.value, "client_id": outcome.client_id}},
        )
        return await call_next(context)

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        outcome = self._auth_outcome()
        logger.info(
            "Authenticated tools/call request",
            extra={
                "auth_data": {
                    "method": outcome.method.value,
                    "client_id": outcome.client_id,
                    "tool": context.message.name,
                }
            },
        )
        return await call_next(context)


# ---------------------------------------------------------------------------
# OAuth2 endpoints
# ---------------------------------------------------------------------------


async def _read_body(request: Request) -> dict | None:
    """Parse a JSON or form-encoded body. Returns None if it isn't an object."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        return dict(form)
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _invalid_request(description: str) -> JSONResponse:
    return JSONResponse(
        {"error": "invalid_request", "error_description": description},
        status_code=400,
    )


def _register_oauth_routes(mcp: FastMCP, issuer: TokenIssuer) -> None:
    # Plain HTTP routes, not MCP protocol. They are outside the protected
    # path: a client has to reach the token endpoint before it has a token.

    @mcp.custom_route("/oauth/token", methods=["POST"])
    async def token_endpoint(request: Request) -> Response:
        body = await _read_body(request)
        if body is None:
            return _invalid_request("Request body must be a JSON object or form data")

        try:
            grant = issuer.issue_token(
                body.get("grant_type"),
                body.get("client_id"),
                body.get("client_secret"),
            )
        except ClientCredentialsError as e:
            return JSONResponse(e.to_dict(), status_code=e.status_code)

        return JSONResponse(grant.to_dict(), headers={"Cache-Control": "no-store"})

    @mcp.custom_route("/oauth/revoke", methods=["POST"])
    async def revoke_endpoint(request: Request) -> Response:
        body = await _read_body(request)
        token = body.get("token") if body else None
        if token is None or token == "":
            return _invalid_request("Token parameter is required")

        return JSONResponse(issuer.revoke_token(str(token)))


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(config: Settings, registry: TokenStore) -> FastMCP:
    """Build the FastMCP server: tools, OAuth2 routes and health check."""
    issuer = TokenIssuer(
        registry,
        clients=config.clients,
        secret=config.jwt_secret_key,
        algorithm=config.jwt_algorithm,
        lifetime_seconds=config.token_lifetime_seconds,
        sweep_interval_seconds=config.token_sweep_interval_seconds,
    )

    mcp = FastMCP(
        name=SERVER_NAME,
        version=SERVER_VERSION,
        instructions=(
            "Demonstration MCP server secured with an API key or an OAuth2 "
            "client credentials token. Provides time, echo and arithmetic tools."
        ),
        middleware=[ToolAuditMiddleware()],
    )

    mcp.tool(description="Returns the current server time")(tools.get_server_time)
    mcp.tool(description="Echoes back the provided message")(tools.echo)
    mcp.tool(description="Performs basic arithmetic operations")(tools.calculate)

    _register_oauth_routes(mcp, issuer)

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness probe. No authentication required."""
        return JSONResponse({"status": "ok", "server": SERVER_NAME, "version": SERVER_VERSION})

    return mcp


def http_middleware(config: Settings, registry: TokenStore) -> list[ASGIMiddleware]:
    """Starlette middleware stack: CORS outermost, then the gate on the MCP path."""
    validator = CredentialValidator(
        api_keys=config.api_keys,
        secret=config.jwt_secret_key,
        registry=registry,
        algorithm=config.jwt_algorithm,
    )
    return [
        ASGIMiddleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["mcp-session-id"],
        ),
        ASGIMiddleware(
            AuthGatewayMiddleware,
            gateway=AuthGateway(validator),
            protected_path=config.mcp_path,
        ),
    ]


def create_app(config: Settings = settings, registry: TokenStore | None = None):
    """
    Build the ASGI app with a fresh (or the given) token registry.

    Each app owns its registry, so tests get isolated token state.
    """
    if registry is None:
        registry = TokenRegistry()
    mcp = create_server(config, registry)
    return mcp.http_app(
        path=config.mcp_path,
        transport="streamable-http",
        middleware=http_middleware(config, registry),
        stateless_http=True,
    )


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    if settings.jwt_secret_key == DEFAULT_JWT_SECRET:
        logger.warning("Using the development JWT secret; set MCP_JWT_SECRET_KEY in production")

    uvicorn_config = None
    if settings.use_https:
        if not settings.ssl_certfile.exists() or not settings.ssl_keyfile.exists():
            logger.error(
                "HTTPS enabled but certificates not found at %s / %s",
                settings.ssl_certfile,
                settings.ssl_keyfile,
            )
            sys.exit(1)
        uvicorn_config = {
            "ssl_certfile": str(settings.ssl_certfile),
            "ssl_keyfile": str(settings.ssl_keyfile),
        }

    registry = TokenRegistry()
    mcp = create_server(settings, registry)

    logger.info(
        "Starting MCP server on %s://%s:%d%s (transport=streamable-http, stateless, auth=apikey+oauth2)",
        "https" if settings.use_https else "http",
        settings.host,
        settings.port,
        settings.mcp_path,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        path=settings.mcp_path,
        middleware=http_middleware(settings, registry),
        stateless_http=True,
        uvicorn_config=uvicorn_config,
    )


if __name__ == "__main__":
    main()
