"""Small helpers shared by the route modules."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import quote

import aiohttp_jinja2
from aiohttp import web

from backoffice.api.errors import ApiError

logger = logging.getLogger(__name__)


def is_htmx(request: web.Request) -> bool:
    return bool(request.headers.get("HX-Request"))


def render_partial(request: web.Request, template_name: str, context: dict, status: int = 200) -> web.Response:
    """Render a template fragment for an HTMX swap."""
    env = aiohttp_jinja2.get_env(request.app)
    html = env.get_template(template_name).render(display=request.app["display"], **context)
    return web.Response(text=html, content_type="text/html", status=status)


def toast(request: web.Request, kind: str, title: str, message: str | None = None) -> web.Response:
    """A flash partial for HTMX responses (rendered into #toasts)."""
    return render_partial(
        request, "partials/flash.html",
        {"flashes": [{"kind": kind, "title": title, "message": message}]},
    )


def flash(request: web.Request, kind: str, title: str, message: str | None = None) -> None:
    request["session"].flash(kind, title, message)


def redirect(request: web.Request, location: str) -> web.HTTPException:
    """See-other for plain forms, HX-Redirect for HTMX."""
    if is_htmx(request):
        return web.HTTPOk(headers={"HX-Redirect": location})
    return web.HTTPSeeOther(location)


def login_redirect(request: web.Request, error: str | None = None) -> web.HTTPException:
    location = f"/login?next={quote(request.path_qs, safe='')}"
    if error:
        location += f"&error={error}"
    return redirect(request, location)


def int_param(request: web.Request, name: str) -> int:
    """A numeric path segment, or 404."""
    try:
        return int(request.match_info[name])
    except (KeyError, ValueError):
        raise web.HTTPNotFound()


def query_criteria(request: web.Request, keys: tuple[str, ...]) -> dict[str, str]:
    """Non-blank query parameters among ``keys``."""
    return {k: request.query[k].strip() for k in keys if request.query.get(k, "").strip()}


def page_params(request: web.Request) -> dict[str, Any]:
    try:
        page = max(int(request.query.get("page", 0)), 0)
    except ValueError:
        page = 0
    return {"page": page, "size": request.app["display"]["page_size"]}


def username(request: web.Request) -> str | None:
    user = request.get("user")
    return user.username if user else None


@asynccontextmanager
async def journaled(
    request: web.Request,
    action: str,
    entity_type: str,
    entity_id: Any,
    title: str,
    details: dict | None = None,
) -> AsyncIterator[dict]:
    """Record a mutating action in the journal around the wrapped block.

    The block may add keys to the yielded dict; they are stored with the
    completed action. A failure marks the action failed and re-raises.
    """
    journal = request.app["journal"]
    action_id = await journal.start_action(
        action, entity_type, entity_id, title, details, username=username(request),
    )
    outcome: dict = {}
    try:
        yield outcome
    except ApiError as e:
        await journal.end_action(action_id, "failed", {"error": e.message, "status": e.status})
        raise
    except Exception as e:
        await journal.end_action(action_id, "failed", {"error": str(e)})
        raise
    await journal.end_action(action_id, "completed", outcome or None)


def record_values(record: dict, date_fields: tuple[str, ...] = ("validFrom", "validTo")) -> dict:
    """A backend record as form input values (datetime-local precision for dates)."""
    values = {}
    for key, value in record.items():
        if key.startswith("_"):
            continue
        if key in date_fields and isinstance(value, str):
            value = value[:16]
        values[key] = value
    return values


def submitted_values(data) -> dict:
    """Text fields of a submitted form, for re-rendering it with errors."""
    return {k: v for k, v in data.items() if isinstance(v, str)}
