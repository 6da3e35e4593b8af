"""
In-memory registry of currently-valid access tokens.

A signed, unexpired token is only honored while it is listed here. Removing it
(revocation) makes it unusable immediately, even though its signature and
expiry would still verify.

The registry is shared by every request handler, so membership checks,
inserts and deletes all go through one lock. Nothing is persisted: a restart
forgets every issued token.
"""

import threading
from datetime import datetime
from typing import Protocol


class TokenStore(Protocol):
    """Backing store for issued tokens. TokenRegistry is the in-memory one."""

    def register(self, token: str, expires_at: datetime) -> None: ...

    def revoke(self, token: str) -> None: ...

    def sweep_expired(self, now: datetime) -> int: ...

    def __contains__(self, token: object) -> bool: ...

    def __len__(self) -> int: ...


class TokenRegistry:
    """Thread-safe set of issued tokens, each remembered with its expiry."""

    def __init__(self) -> None:
        self._tokens: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def register(self, token: str, expires_at: datetime) -> None:
        with self._lock:
            self._tokens[token] = expires_at

    def revoke(self, token: str) -> None:
        """Forget a token. Unknown or already-revoked tokens are a no-op."""
        with self._lock:
            self._tokens.pop(token, None)

    def sweep_expired(self, now: datetime) -> int:
        """
        Drop every token whose expiry is at or before `now`.

        Expired tokens already fail validation on their `exp` claim, so this
        only reclaims memory; it never changes an authentication outcome.

        Returns:
            The number of entries removed
        """
        with self._lock:
            expired = [token for token, expires_at in self._tokens.items() if expires_at <= now]
            for token in expired:
                del self._tokens[token]
        return len(expired)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
