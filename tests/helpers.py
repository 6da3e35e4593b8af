"""Constants and helpers shared by the test modules."""

import json
from datetime import datetime, timedelta, timezone

import httpx

TEST_SECRET = "test-signing-secret-at-least-32-bytes"
TEST_ALGORITHM = "HS256"
TEST_API_KEY = "mcp-secret-key-12345"
TEST_CLIENT_ID = "mcp-client"
TEST_CLIENT_SECRET = "mcp-client-secret"

MCP_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
}


def parse_mcp_response(response: httpx.Response) -> dict:
    """
    Parse an MCP endpoint response into the JSON-RPC message.

    Successful MCP responses arrive as SSE events ("data: {...}"); rejections
    from the auth layer are plain JSON.
    """
    if response.headers.get("content-type", "").startswith("application/json"):
        return response.json()
    for line in response.text.strip().split("\n"):
        if line.startswith("data: "):
            return json.loads(line[6:])
    return {}


def far_future() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1)
