"""
Fleet Backoffice HAL Client

Async client for the HATEOAS (Spring Data REST) backend. Handles bearer
auth, link discovery, URI templates and error decoding; the resource APIs
in this package are thin wrappers around it.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Iterable

import aiohttp

from backoffice.activity import activity
from backoffice.api.errors import error_from_response
from backoffice.api.hal import expand_template

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]

# Resources whose create/update go through the versioned controller
V1_WRITE_RESOURCES = {"pricings"}


def build_query(options: dict[str, Any] | None) -> dict[str, str]:
    """Query params with ``None`` dropped and bools rendered the Java way."""
    params: dict[str, str] = {}
    for key, value in (options or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        else:
            params[key] = str(value)
    return params


class HalClient:
    """HAL/HATEOAS REST client on a shared aiohttp session."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._links: dict[str, str] = {}

    async def start(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
            logger.info(f"HAL client started (backend: {self.base_url})")

    async def stop(self) -> None:
        """Close the HTTP session if this client opened it."""
        if self._session and self._owns_session:
            await self._session.close()
            logger.info("HAL client stopped")
        self._session = None

    def bind(self, token_provider: TokenProvider | None) -> "HalClient":
        """A client sharing this one's session and links, with another token source."""
        bound = HalClient(
            self.base_url,
            token_provider=token_provider,
            session=self._session,
            timeout=self.timeout,
        )
        bound._owns_session = False
        bound._links = self._links
        return bound

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def absolute(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        if not url.startswith("/"):
            url = "/" + url
        return f"{self.base_url}{url}"

    async def _headers(self, extra: dict[str, str] | None, json_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/hal+json, application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        if self.token_provider is not None:
            token = await self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        data: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send a request and return the decoded body.

        Returns ``{}`` for 204/empty responses. Raises ApiError (or a
        subclass) for non-2xx responses.
        """
        if self._session is None:
            await self.start()

        full_url = self.absolute(url)
        is_json = data is None
        body = json.dumps(json_body) if json_body is not None else data
        request_headers = await self._headers(headers, json_body=is_json)

        async with self._session.request(
            method,
            full_url,
            data=body,
            params=build_query(params) or None,
            headers=request_headers,
        ) as resp:
            text = await resp.text()
            if resp.status >= 400:
                err = error_from_response(resp.status, text)
                logger.warning(f"{method} {full_url} failed: {resp.status} {err.message}")
                activity.api_error(method, full_url, resp.status, err.message)
                raise err

            if resp.status == 204 or not text.strip():
                return {}
            try:
                return json.loads(text)
            except ValueError:
                return text

    async def fetch_bytes(self, url: str) -> tuple[bytes, str]:
        """GET raw bytes (images). Returns (content, content_type)."""
        if self._session is None:
            await self.start()
        full_url = self.absolute(url)
        request_headers = await self._headers(None, json_body=False)
        async with self._session.get(full_url, headers=request_headers) as resp:
            if resp.status >= 400:
                raise error_from_response(resp.status, await resp.text())
            content = await resp.read()
            return content, resp.headers.get("Content-Type", "application/octet-stream")

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    async def discover(self) -> dict[str, str]:
        """Read the API root and cache rel → href."""
        root = await self.request("GET", "/api")
        links = root.get("_links", {}) if isinstance(root, dict) else {}
        self._links.clear()
        for rel, link in links.items():
            if isinstance(link, dict) and link.get("href"):
                self._links[rel] = link["href"]
        logger.info(f"Discovered {len(self._links)} backend resources")
        return dict(self._links)

    def endpoint(self, resource: str, use_v1: bool = False) -> str:
        """URL of a resource collection."""
        if use_v1:
            return f"{self.base_url}/api/v1/{resource}"
        href = self._links.get(resource)
        if href:
            return self.absolute(expand_template(href, {}))
        return f"{self.base_url}/api/{resource}"

    # =========================================================================
    # RESOURCE OPERATIONS
    # =========================================================================

    async def get_collection(self, resource: str, **options: Any) -> dict:
        return await self.request("GET", self.endpoint(resource), params=options)

    async def get_resource(
        self,
        resource_or_url: str,
        resource_id: int | str | None = None,
        projection: str | None = None,
    ) -> dict:
        if resource_id is None:
            url = resource_or_url
        else:
            url = f"{self.endpoint(resource_or_url)}/{resource_id}"
        params = {"projection": projection} if projection else None
        return await self.request("GET", url, params=params)

    async def create(self, resource: str, data: dict) -> dict:
        url = self.endpoint(resource, use_v1=resource in V1_WRITE_RESOURCES)
        return await self.request("POST", url, json_body=data)

    async def update(self, resource: str, resource_id: int | str, data: dict) -> dict:
        url = self.endpoint(resource, use_v1=resource in V1_WRITE_RESOURCES)
        return await self.request("PUT", f"{url}/{resource_id}", json_body=data)

    async def patch(self, resource: str, resource_id: int | str, data: dict) -> dict:
        return await self.request("PATCH", f"{self.endpoint(resource)}/{resource_id}", json_body=data)

    async def delete(self, resource: str, resource_id: int | str) -> None:
        await self.request("DELETE", f"{self.endpoint(resource)}/{resource_id}")

    async def follow_link(self, resource_or_href: dict | str, rel: str | None = None) -> Any:
        """GET a link target, either a resource's ``_links[rel]`` or a raw href."""
        if isinstance(resource_or_href, str):
            href = resource_or_href
        else:
            link = (resource_or_href.get("_links") or {}).get(rel or "self")
            if not isinstance(link, dict) or not link.get("href"):
                raise ValueError(f"Link '{rel}' not found in resource")
            href = link["href"]
        return await self.request("GET", self.absolute(expand_template(href, {})))

    async def search(self, resource: str, name: str, params: dict[str, Any] | None = None) -> dict:
        return await self.request(
            "GET", f"{self.endpoint(resource)}/search/{name}", params=params,
        )

    async def add_association(
        self,
        resource: str,
        resource_id: int | str,
        association: str,
        uris: Iterable[str],
    ) -> None:
        """Replace an association with the given entity URIs (text/uri-list)."""
        await self.request(
            "PUT",
            f"{self.endpoint(resource)}/{resource_id}/{association}",
            data="\n".join(uris),
            headers={"Content-Type": "text/uri-list"},
        )

    async def remove_association(
        self,
        resource: str,
        resource_id: int | str,
        association: str,
        associated_id: int | str | None = None,
    ) -> None:
        url = f"{self.endpoint(resource)}/{resource_id}/{association}"
        if associated_id is not None:
            url += f"/{associated_id}"
        await self.request("DELETE", url)

    async def upload(self, url: str, form: aiohttp.FormData, method: str = "POST") -> Any:
        """Send a multipart form; aiohttp sets the boundary header."""
        return await self.request(method, url, data=form)
