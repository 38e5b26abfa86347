"""Keycloak login and the sealed cookie session."""

from backoffice.auth.oauth import AuthError, KeycloakClient, User, generate_state, map_user_info
from backoffice.auth.session import (
    SessionData,
    SessionSealer,
    TokenCache,
    TokenProvider,
    create_session,
    is_expired,
)

__all__ = [
    "AuthError",
    "KeycloakClient",
    "SessionData",
    "SessionSealer",
    "TokenCache",
    "TokenProvider",
    "User",
    "create_session",
    "generate_state",
    "is_expired",
    "map_user_info",
]
