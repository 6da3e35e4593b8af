"""
CLI utility to obtain (or revoke) an OAuth2 access token from the MCP server.

The server is its own authorization server: POST client credentials to
/oauth/token and it answers with a signed Bearer token valid for one hour.

Usage examples:

    # Token for the default development client
    uv run python -m scripts.request_token

    # Custom server and credentials
    uv run python -m scripts.request_token --url https://localhost:3000 \\
        --client-id my-client --client-secret my-secret --insecure

    # Revoke a token
    uv run python -m scripts.request_token --revoke <token>

The printed token can be used with curl:

    curl -X POST http://localhost:3000/mcp \\
      -H "Content-Type: application/json" \\
      -H "Accept: application/json, text/event-stream" \\
      -H "Authorization: Bearer <token>" \\
      -d '{"jsonrpc":"2.0","id":1,"method":"tools/list","params":{}}'
"""

import argparse
import sys

import httpx


class TokenRequestError(Exception):
    """The server refused the request; carries the OAuth2 error body."""

    def __init__(self, status_code: int, body: dict):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"{status_code} {body.get('error', 'error')}: {body.get('error_description', '')}"
        )


def request_token(client: httpx.Client, client_id: str, client_secret: str) -> dict:
    """
    Exchange client credentials for an access token.

    Returns:
        The token response: access_token, token_type, expires_in, scope

    Raises:
        TokenRequestError: If the server answers with an OAuth2 error
    """
    response = client.post(
        "/oauth/token",
        json={
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        },
    )
    if response.status_code != 200:
        raise TokenRequestError(response.status_code, response.json())
    return response.json()


def revoke_token(client: httpx.Client, token: str) -> dict:
    """Ask the server to forget a token. Returns {"revoked": true}."""
    response = client.post("/oauth/revoke", json={"token": token})
    if response.status_code != 200:
        raise TokenRequestError(response.status_code, response.json())
    return response.json()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Request or revoke OAuth2 access tokens for the secured MCP server.",
    )
    parser.add_argument(
        "--url",
        default="http://localhost:3000",
        help="Base URL of the server (default: http://localhost:3000)",
    )
    parser.add_argument("--client-id", default="mcp-client", help="OAuth2 client_id")
    parser.add_argument(
        "--client-secret", default="mcp-client-secret", help="OAuth2 client_secret"
    )
    parser.add_argument(
        "--revoke",
        metavar="TOKEN",
        help="Revoke the given token instead of requesting a new one",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate verification (self-signed development certs)",
    )

    args = parser.parse_args(argv)

    with httpx.Client(base_url=args.url, verify=not args.insecure) as client:
        try:
            if args.revoke:
                result = revoke_token(client, args.revoke)
                print(f"Revoked: {result['revoked']}")
                return 0

            result = request_token(client, args.client_id, args.client_secret)
        except TokenRequestError as e:
            print(f"Request failed: {e}", file=sys.stderr)
            return 1

    token = result["access_token"]
    print(f"Client:     {args.client_id}")
    print(f"Scope:      {result['scope']}")
    print(f"Expires in: {result['expires_in']}s")
    print()
    print(f"Token: {token}")

    print()
    print("Usage with curl (list tools):")
    print(f"  curl -X POST {args.url}/mcp \\")
    print('    -H "Content-Type: application/json" \\')
    print('    -H "Accept: application/json, text/event-stream" \\')
    print(f'    -H "Authorization: Bearer {token}" \\')
    print('    -d \'{"jsonrpc":"2.0","id":1,"method":"tools/list","params":{}}\'')
    return 0


if __name__ == "__main__":
    sys.exit(main())
