"""Shared fixtures for backoffice tests."""

import asyncio
import json
import time
from pathlib import Path

import pytest
from aiohttp import web

from backoffice.api.client import HalClient
from backoffice.api.registration import RegistrationApi
from backoffice.auth import KeycloakClient, SessionData
from backoffice.config import Config, KeycloakConfig
from backoffice.journal import ActionJournal
from backoffice.settings_store import SettingsStore
from backoffice.web.server import WebServer

TEST_USER = {
    "id": "user-1",
    "username": "ops.lead",
    "email": "ops@fleet.test",
    "email_verified": True,
    "first_name": "Ops",
    "last_name": "Lead",
    "roles": ["admin"],
    "capabilities": ["admin:read", "admin:write"],
}


@pytest.fixture
async def journal():
    """In-memory ActionJournal, opened and closed per test."""
    store = ActionJournal(db_path=Path(":memory:"))
    await store.open()
    yield store
    await store.close()


@pytest.fixture
async def settings_store():
    store = SettingsStore()
    await store.open(Path(":memory:"))
    yield store
    await store.close()


# =========================================================================
# FAKE HAL BACKEND
# =========================================================================

class FakeBackend:
    """Canned responses keyed by (method, path); every request is recorded."""

    def __init__(self):
        self.requests: list[dict] = []
        self.responses: dict[tuple[str, str], tuple[int, bytes, str]] = {}

    def respond(self, method, path, body=None, status=200, content_type="application/json"):
        if isinstance(body, bytes):
            raw = body
        elif body is None:
            raw = b""
        else:
            raw = json.dumps(body).encode()
        self.responses[(method, path)] = (status, raw, content_type)

    def calls(self, method=None, path=None) -> list[dict]:
        return [
            r for r in self.requests
            if (method is None or r["method"] == method) and (path is None or r["path"] == path)
        ]

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": body,
        })
        canned = self.responses.get((request.method, request.path))
        if canned is None:
            return web.json_response(
                {"message": f"No handler for {request.method} {request.path}"}, status=404,
            )
        status, raw, content_type = canned
        if status == 204:
            return web.Response(status=204)
        return web.Response(body=raw, status=status, content_type=content_type)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
async def backend_server(aiohttp_server, fake_backend):
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake_backend.handle)
    return await aiohttp_server(app)


@pytest.fixture
def backend_url(backend_server) -> str:
    return str(backend_server.make_url("/")).rstrip("/")


@pytest.fixture
async def hal(backend_url):
    """HalClient against the fake backend with a fixed bearer token."""

    async def token():
        return "test-token"

    client = HalClient(backend_url, token_provider=token, timeout=5)
    await client.start()
    yield client
    await client.stop()


# =========================================================================
# WEB APP
# =========================================================================

@pytest.fixture
def config(backend_url) -> Config:
    cfg = Config()
    cfg.backend.api_base_url = backend_url
    cfg.keycloak = KeycloakConfig(issuer="http://keycloak.test/realms/backoffice", client_id="backoffice-client")
    cfg.session.secret = "test-session-secret"
    return cfg


@pytest.fixture
def web_server(config, hal, journal, settings_store) -> WebServer:
    keycloak = KeycloakClient(config.keycloak, "http://localhost:3000", config.backend.api_base_url)
    server = WebServer(
        config=config,
        hal=hal,
        keycloak=keycloak,
        registration=RegistrationApi(hal),
        journal=journal,
        settings_store=settings_store,
    )
    # Access token for TEST_USER, so no Keycloak refresh is needed
    server.app["token_cache"].store(TEST_USER["id"], "test-token", time.time() + 3600)
    return server


@pytest.fixture
async def anon_client(aiohttp_client, web_server):
    return await aiohttp_client(web_server.app)


@pytest.fixture
async def client(aiohttp_client, web_server, config):
    """Test client carrying a sealed, logged-in session cookie."""
    c = await aiohttp_client(web_server.app)
    session = SessionData(
        user_id=TEST_USER["id"],
        refresh_token="refresh-token",
        expires_at=time.time() + 3600,
        is_logged_in=True,
        user=dict(TEST_USER),
    )
    cookie = web_server.app["sealer"].seal(session)
    c.session.cookie_jar.update_cookies({config.session.cookie_name: cookie})
    return c


# =========================================================================
# SSE
# =========================================================================

async def read_sse_frames(response, count=1, timeout=2.0):
    """Read `count` SSE frames from a streaming response.

    Each frame is returned as a dict with 'event' and 'data' keys.
    """
    frames = []
    buffer = b""

    async def _read():
        nonlocal buffer
        while len(frames) < count:
            chunk = await response.content.read(4096)
            if not chunk:
                break
            buffer += chunk
            while b"\n\n" in buffer:
                raw_frame, buffer = buffer.split(b"\n\n", 1)
                frame = _parse_sse_frame(raw_frame.decode())
                if frame:
                    frames.append(frame)
                    if len(frames) >= count:
                        return

    try:
        await asyncio.wait_for(_read(), timeout=timeout)
    except asyncio.TimeoutError:
        pass
    return frames


def _parse_sse_frame(raw: str) -> dict | None:
    event = None
    data_lines = []
    for line in raw.strip().split("\n"):
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())
        elif line.startswith(":"):
            return {"event": "comment", "data": line[1:].strip()}
    if event is None and not data_lines:
        return None
    return {"event": event, "data": "\n".join(data_lines)}
