"""
Keycloak OpenID Connect client.

Authorization-code login, token refresh and user lookup. User details come
from the backend's /api/auth/me when it answers (its ROLE_* and CAP_*
authorities are the source of truth) and from Keycloak's userinfo
endpoint otherwise.
"""

import logging
import secrets
from dataclasses import asdict, dataclass, field
from urllib.parse import urlencode

import aiohttp

from backoffice.activity import activity
from backoffice.config import KeycloakConfig

logger = logging.getLogger(__name__)

# Capabilities implied by a role when the backend grants none explicitly
ROLE_CAPABILITIES = {
    "admin": ["admin:read", "admin:write", "admin:delete", "users:manage"],
    "manager": ["vehicles:manage", "bookings:manage", "reports:read"],
    "user": ["bookings:read", "vehicles:read"],
}


class AuthError(Exception):
    """Token exchange, refresh or user lookup failed."""


@dataclass
class User:
    id: str
    username: str
    email: str = ""
    email_verified: bool = False
    first_name: str = ""
    last_name: str = ""
    roles: list[str] = field(default_factory=list)
    capabilities: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.username

    def has_role(self, role: str) -> bool:
        return role.lower() in (r.lower() for r in self.roles)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict | None) -> "User | None":
        if not data:
            return None
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def generate_state() -> str:
    """Random CSRF state for the authorization request."""
    return secrets.token_urlsafe(16)


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def backend_user_to_userinfo(body: dict, client_id: str) -> dict:
    """Reshape a backend /api/auth/me body into OIDC userinfo form."""
    username = body.get("username") or ""
    authorities = body.get("authorities") or []
    name_parts = username.split(".")
    first = body.get("firstName") or ""
    last = body.get("lastName") or ""
    return {
        "sub": body.get("sub") or body.get("accountId") or username,
        "email": body.get("email") or "",
        "email_verified": bool(body.get("authenticated")),
        "preferred_username": username,
        "name": f"{first} {last}".strip() or username,
        "given_name": first or name_parts[0] or username,
        "family_name": last or (name_parts[1] if len(name_parts) > 1 else ""),
        "realm_access": {
            "roles": [a[len("ROLE_"):].lower() for a in authorities if a.startswith("ROLE_")],
        },
        "resource_access": {
            client_id: {
                "roles": [a[len("CAP_"):].lower() for a in authorities if a.startswith("CAP_")],
            },
        },
    }


def map_user_info(info: dict, client_id: str) -> User:
    """Turn OIDC userinfo (or a reshaped backend body) into a User."""
    realm_roles = (info.get("realm_access") or {}).get("roles") or []
    client_roles = ((info.get("resource_access") or {}).get(client_id) or {}).get("roles") or []
    roles = _dedupe([*realm_roles, *client_roles])

    capabilities = list(client_roles)
    for role in roles:
        capabilities.extend(ROLE_CAPABILITIES.get(role.lower(), []))

    return User(
        id=info.get("sub") or "",
        username=info.get("preferred_username") or "",
        email=info.get("email") or "",
        email_verified=bool(info.get("email_verified")),
        first_name=info.get("given_name") or "",
        last_name=info.get("family_name") or "",
        roles=roles,
        capabilities=_dedupe(capabilities),
    )


class KeycloakClient:
    """Talks to the Keycloak token/userinfo endpoints on a shared aiohttp session."""

    def __init__(
        self,
        config: KeycloakConfig,
        app_base_url: str,
        backend_url: str,
        session: aiohttp.ClientSession | None = None,
    ):
        self.config = config
        self.app_base_url = app_base_url.rstrip("/")
        self.backend_url = backend_url.rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15))
            self._owns_session = True

    async def stop(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    @property
    def redirect_uri(self) -> str:
        return f"{self.app_base_url}/api/auth/callback/keycloak"

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.config.scope,
            "state": state,
        }
        return f"{self.config.authorization_endpoint}?{urlencode(params)}"

    def logout_url(self, id_token: str | None = None) -> str:
        params = {"post_logout_redirect_uri": self.app_base_url, "client_id": self.config.client_id}
        if id_token:
            params["id_token_hint"] = id_token
        return f"{self.config.logout_endpoint}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        """Trade an authorization code for a token response."""
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": self.redirect_uri,
        }, "Token exchange")

    async def refresh(self, refresh_token: str) -> dict:
        return await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }, "Token refresh")

    async def _token_request(self, form: dict, what: str) -> dict:
        try:
            async with self._session.post(self.config.token_endpoint, data=form) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    activity.auth_error(f"{what} failed ({resp.status})")
                    raise AuthError(f"{what} failed: {text}")
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            activity.auth_error(f"{what} failed: {e}")
            raise AuthError(f"{what} failed: {e}") from e

    async def user_info(self, access_token: str) -> dict:
        """Userinfo from the backend if it answers, otherwise from Keycloak."""
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with self._session.get(f"{self.backend_url}/api/auth/me", headers=headers) as resp:
                if resp.status == 200:
                    body = await resp.json(content_type=None)
                    return backend_user_to_userinfo(body, self.config.client_id)
                logger.debug(f"Backend /api/auth/me returned {resp.status}, using Keycloak userinfo")
        except (aiohttp.ClientError, ValueError) as e:
            logger.debug(f"Backend /api/auth/me unavailable ({e}), using Keycloak userinfo")

        try:
            async with self._session.get(self.config.userinfo_endpoint, headers=headers) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise AuthError(f"Failed to fetch user info: {text}")
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise AuthError(f"Failed to fetch user info: {e}") from e

    async def fetch_user(self, access_token: str) -> User:
        return map_user_info(await self.user_info(access_token), self.config.client_id)
