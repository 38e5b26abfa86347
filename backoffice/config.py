"""
Fleet Backoffice Configuration Loader

Loads configuration from:
1. config/backoffice.yaml (or $BACKOFFICE_CONFIG_DIR/backoffice.yaml) - defaults
2. .env file - Secrets (client secret, session secret)
"""

import os
from pathlib import Path
from dataclasses import dataclass, field

import yaml
from dotenv import load_dotenv


@dataclass
class BackendConfig:
    api_base_url: str = "http://localhost:8082"
    registration_base_url: str = ""
    timeout: float = 30.0

    @property
    def registration_url(self) -> str:
        return self.registration_base_url or self.api_base_url


@dataclass
class KeycloakConfig:
    issuer: str = "http://localhost:8180/realms/backoffice"
    client_id: str = "backoffice-client"
    client_secret: str = ""
    authorization_endpoint: str = ""
    token_endpoint: str = ""
    userinfo_endpoint: str = ""
    logout_endpoint: str = ""
    scope: str = "openid profile email roles"

    def __post_init__(self) -> None:
        base = f"{self.issuer.rstrip('/')}/protocol/openid-connect"
        self.authorization_endpoint = self.authorization_endpoint or f"{base}/auth"
        self.token_endpoint = self.token_endpoint or f"{base}/token"
        self.userinfo_endpoint = self.userinfo_endpoint or f"{base}/userinfo"
        self.logout_endpoint = self.logout_endpoint or f"{base}/logout"


@dataclass
class SessionConfig:
    cookie_name: str = "backoffice-session"
    secret: str = "change-me-to-a-long-random-secret"
    max_age: int = 60 * 60 * 24 * 7
    secure: bool = False


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    app_base_url: str = "http://localhost:3000"


@dataclass
class DisplayConfig:
    currency: str = "MYR"
    locale: str = "en-MY"
    page_size: int = 20


@dataclass
class Config:
    """Main configuration container."""
    app_name: str = "Fleet Backoffice"
    backend: BackendConfig = field(default_factory=BackendConfig)
    keycloak: KeycloakConfig = field(default_factory=KeycloakConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    web: WebConfig = field(default_factory=WebConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    db_path: Path = Path("data/backoffice.db")

    @classmethod
    def load(cls, config_dir: Path | None = None) -> "Config":
        """Load configuration from yaml file and environment variables.

        Resolution order:
        1. BACKOFFICE_CONFIG_DIR env var → dir/backoffice.yaml
        2. Explicit config_dir argument → config_dir/backoffice.yaml
        3. Default: ../config/backoffice.yaml
        """
        env_dir = os.environ.get("BACKOFFICE_CONFIG_DIR")
        if env_dir:
            config_dir = Path(env_dir)
        elif config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"

        yaml_path = config_dir / "backoffice.yaml"
        load_dotenv(config_dir.parent / ".env", override=False)

        yaml_config = {}
        if yaml_path.exists():
            with open(yaml_path) as f:
                yaml_config = yaml.safe_load(f) or {}

        backend_cfg = yaml_config.get("backend", {})
        keycloak_cfg = yaml_config.get("keycloak", {})
        session_cfg = yaml_config.get("session", {})
        web_cfg = yaml_config.get("web", {})
        display_cfg = yaml_config.get("display", {})

        # Env vars override yaml for deployment-specific endpoints
        backend = BackendConfig(
            api_base_url=os.getenv("BACKEND_API_URL", backend_cfg.get("api_base_url", "http://localhost:8082")),
            registration_base_url=os.getenv(
                "REGISTRATION_API_URL", backend_cfg.get("registration_base_url", "")
            ),
            timeout=float(backend_cfg.get("timeout", 30.0)),
        )

        keycloak = KeycloakConfig(
            issuer=os.getenv("KEYCLOAK_ISSUER", keycloak_cfg.get("issuer", "http://localhost:8180/realms/backoffice")),
            client_id=os.getenv("KEYCLOAK_CLIENT_ID", keycloak_cfg.get("client_id", "backoffice-client")),
            client_secret=os.getenv("KEYCLOAK_CLIENT_SECRET", ""),
            authorization_endpoint=keycloak_cfg.get("authorization_endpoint", ""),
            token_endpoint=keycloak_cfg.get("token_endpoint", ""),
            userinfo_endpoint=keycloak_cfg.get("userinfo_endpoint", ""),
            logout_endpoint=keycloak_cfg.get("logout_endpoint", ""),
            scope=keycloak_cfg.get("scope", "openid profile email roles"),
        )

        session = SessionConfig(
            cookie_name=session_cfg.get("cookie_name", "backoffice-session"),
            secret=os.getenv("SESSION_SECRET", session_cfg.get("secret", "change-me-to-a-long-random-secret")),
            max_age=int(session_cfg.get("max_age", 60 * 60 * 24 * 7)),
            secure=_as_bool(os.getenv("SESSION_SECURE", session_cfg.get("secure", False))),
        )

        web = WebConfig(
            host=web_cfg.get("host", "0.0.0.0"),
            port=int(os.getenv("BACKOFFICE_PORT", web_cfg.get("port", 3000))),
            app_base_url=os.getenv("APP_BASE_URL", web_cfg.get("app_base_url", "http://localhost:3000")),
        )

        display = DisplayConfig(
            currency=display_cfg.get("currency", "MYR"),
            locale=display_cfg.get("locale", "en-MY"),
            page_size=int(display_cfg.get("page_size", 20)),
        )

        db_path = Path(yaml_config.get("database", {}).get("path", "data/backoffice.db"))
        if not db_path.is_absolute():
            db_path = config_dir.parent / db_path

        return cls(
            app_name=yaml_config.get("app_name", "Fleet Backoffice"),
            backend=backend,
            keycloak=keycloak,
            session=session,
            web=web,
            display=display,
            db_path=db_path,
        )


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
