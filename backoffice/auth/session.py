"""
Cookie session.

Only the refresh token, its expiry and the signed-in user's profile are
kept, sealed with Fernet under a key derived from the session secret.
Access tokens live in memory and are re-minted from the refresh token.
"""

import asyncio
import base64
import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass, field

from cryptography.fernet import Fernet, InvalidToken

from backoffice.activity import activity
from backoffice.auth.oauth import AuthError, KeycloakClient, User

logger = logging.getLogger(__name__)

EXPIRY_BUFFER = 5 * 60
ACCESS_TOKEN_MARGIN = 30


@dataclass
class SessionData:
    user_id: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None
    is_logged_in: bool = False
    user: dict | None = None
    oauth_state: str | None = None
    next_url: str | None = None
    flashes: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionData":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    @property
    def current_user(self) -> User | None:
        return User.from_dict(self.user)

    def flash(self, kind: str, title: str, message: str | None = None) -> None:
        """Queue a toast for the next rendered page."""
        self.flashes.append({"kind": kind, "title": title, "message": message})

    def pop_flashes(self) -> list[dict]:
        flashes, self.flashes = self.flashes, []
        return flashes

    def load(self, other: "SessionData") -> None:
        """Take over every field of ``other`` in place."""
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(other, name))

    def clear(self) -> None:
        self.load(SessionData())


def create_session(
    user_id: str,
    refresh_token: str,
    refresh_expires_in: int,
    now: float | None = None,
) -> SessionData:
    """A logged-in session expiring with the refresh token, not the access token."""
    now = time.time() if now is None else now
    return SessionData(
        user_id=user_id,
        refresh_token=refresh_token,
        expires_at=now + refresh_expires_in,
        is_logged_in=True,
    )


def is_expired(session: SessionData, now: float | None = None) -> bool:
    """True when logged out or within five minutes of refresh-token expiry."""
    if not session.is_logged_in or not session.expires_at:
        return True
    now = time.time() if now is None else now
    return session.expires_at <= now + EXPIRY_BUFFER


def derive_key(secret: str) -> bytes:
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


class SessionSealer:
    """Encrypts SessionData into a cookie value and back."""

    def __init__(self, secret: str, max_age: int | None = None):
        self._fernet = Fernet(derive_key(secret))
        self.max_age = max_age

    def seal(self, session: SessionData) -> str:
        payload = json.dumps(session.to_dict(), separators=(",", ":")).encode()
        return self._fernet.encrypt(payload).decode()

    def unseal(self, token: str | None) -> SessionData:
        """Decrypt a cookie. Anything tampered, stale or malformed is a fresh session."""
        if not token:
            return SessionData()
        try:
            payload = self._fernet.decrypt(token.encode(), ttl=self.max_age)
            return SessionData.from_dict(json.loads(payload))
        except (InvalidToken, ValueError, TypeError):
            logger.debug("Discarding unreadable session cookie")
            return SessionData()


class TokenCache(dict):
    """Access tokens by user id: ``key -> (token, expires_at)``.

    Holds one refresh lock per key so concurrent backend calls for the same
    user wait on a single Keycloak refresh. Expired entries are evicted on
    every write.
    """

    def __init__(self):
        super().__init__()
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def store(self, key: str, token: str | None, expires_at: float, now: float | None = None) -> None:
        now = time.time() if now is None else now
        for stale in [k for k, (_, expiry) in self.items() if expiry <= now and k != key]:
            self.discard(stale)
        self[key] = (token, expires_at)

    def discard(self, key: str) -> None:
        self.pop(key, None)
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]


class TokenProvider:
    """Supplies a bearer token for the session's user, refreshing through Keycloak.

    Tokens are cached in ``cache`` (shared across requests, keyed by user)
    until shortly before they expire. A rotated refresh token is written back
    into the session so the middleware re-seals the cookie.
    """

    def __init__(self, keycloak: KeycloakClient, session: SessionData, cache: TokenCache):
        self.keycloak = keycloak
        self.session = session
        self.cache = cache

    def _cached(self, key: str) -> str | None:
        cached = self.cache.get(key)
        if cached and cached[1] - ACCESS_TOKEN_MARGIN > time.time():
            return cached[0]
        return None

    async def __call__(self) -> str | None:
        if not self.session.is_logged_in or not self.session.refresh_token:
            return None

        key = self.session.user_id or self.session.refresh_token
        token = self._cached(key)
        if token:
            return token

        async with self.cache.lock(key):
            # Another call may have refreshed while this one waited
            token = self._cached(key)
            if token:
                return token

            try:
                tokens = await self.keycloak.refresh(self.session.refresh_token)
            except AuthError:
                self.cache.discard(key)
                raise

            access_token = tokens.get("access_token")
            self.cache.store(key, access_token, time.time() + int(tokens.get("expires_in", 60)))

            rotated = tokens.get("refresh_token")
            if rotated and rotated != self.session.refresh_token:
                self.session.refresh_token = rotated
                if tokens.get("refresh_expires_in"):
                    self.session.expires_at = time.time() + int(tokens["refresh_expires_in"])
                activity.token_refreshed(key)
            return access_token
