"""
Settings routes.

GET/PUT /settings           — local display preferences (SQLite overrides
                              layered over backoffice.yaml)
GET/POST /settings/account  — key/value settings stored on the backend
"""

import asyncio
import logging
from html import escape

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.account_settings import COMMON_SETTING_KEYS, parse_boolean_setting, parse_numeric_setting
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.web.helpers import flash, is_htmx, journaled, redirect, submitted_values
from backoffice.web.presenters import CURRENCY_SYMBOLS

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

DISPLAY_SECTION = "display"

# Preferences editable from the settings page
DISPLAY_FIELDS = {
    "currency": {"type": "select", "label": "Currency", "choices": sorted(CURRENCY_SYMBOLS)},
    "locale": {"type": "text", "label": "Locale", "placeholder": "en-MY"},
    "page_size": {"type": "number", "label": "Rows per page", "min": 5, "max": 100},
}


def _parse_preference(key: str, value: str):
    """Typed value for a display preference, or ValueError."""
    meta = DISPLAY_FIELDS[key]
    if meta["type"] == "number":
        number = int(value)
        if not meta["min"] <= number <= meta["max"]:
            raise ValueError(f"{meta['label']} must be between {meta['min']} and {meta['max']}")
        return number
    if meta["type"] == "select" and value not in meta["choices"]:
        raise ValueError(f"Unknown {meta['label'].lower()}: {value}")
    return value


def _status(kind: str, message: str, status: int = 200) -> web.Response:
    return web.Response(
        text=f'<div id="status-message" class="flash {kind}">{escape(message)}</div>',
        content_type="text/html",
        status=status,
    )


@routes.get("/settings")
@aiohttp_jinja2.template("settings.html")
async def settings_page(request: web.Request) -> dict:
    """Render the display preferences editor."""
    stored = await request.app["settings_store"].get_section(DISPLAY_SECTION)
    display = request.app["display"]
    fields = {
        key: {**meta, "value": display.get(key, ""), "overridden": key in stored}
        for key, meta in DISPLAY_FIELDS.items()
    }
    return {"page": "settings", "fields": fields}


@routes.put("/settings")
async def save_settings(request: web.Request) -> web.Response:
    """Save display preferences; they take effect on the next page load."""
    store = request.app["settings_store"]
    display = request.app["display"]
    defaults = request.app["config"].display
    data = await request.post()

    errors = []
    for key in DISPLAY_FIELDS:
        if key not in data:
            continue
        value = data[key].strip()
        if not value:
            await store.delete(DISPLAY_SECTION, key)
            display[key] = getattr(defaults, key)
            continue
        try:
            parsed = _parse_preference(key, value)
        except ValueError as e:
            errors.append(str(e))
            continue
        await store.set(DISPLAY_SECTION, key, parsed)
        display[key] = parsed

    if errors:
        message = "; ".join(errors)
        if is_htmx(request):
            return _status("error", message, status=422)
        flash(request, "error", "Some settings were not saved", message)
        raise web.HTTPSeeOther("/settings")

    activity.settings(f"display preferences saved ({display['currency']}, {display['page_size']}/page)")
    if is_htmx(request):
        return _status("success", "Settings saved!")
    flash(request, "success", "Settings saved")
    raise web.HTTPSeeOther("/settings")


# =========================================================================
# ACCOUNT SETTINGS (backend)
# =========================================================================

def typed_setting(value: str | None):
    """A stored setting value as number, boolean or text."""
    number = parse_numeric_setting(value)
    if number is not None:
        return int(number) if number.is_integer() else number
    if (value or "").lower() in ("true", "false"):
        return parse_boolean_setting(value)
    return value


async def _effective(request: web.Request) -> dict:
    try:
        body = await request["backend"].account_settings.common()
        return body if isinstance(body, dict) else {}
    except UnauthorizedError:
        raise
    except ApiError as e:
        logger.warning(f"Effective account settings unavailable: {e.message}")
        return {}


async def _account_page(request: web.Request, values: dict, errors: dict, status: int = 200) -> web.Response:
    settings, error = [], None
    try:
        settings, effective = await asyncio.gather(
            request["backend"].account_settings.list(), _effective(request),
        )
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message
        effective = {}
    for setting in settings:
        setting["typedValue"] = typed_setting(setting.get("settingValue"))

    key = values.get("settingKey")
    if key and "settingValue" not in values:
        current = next((s for s in settings if s.get("settingKey") == key), None)
        if current:
            values = {**values, "settingValue": current.get("settingValue"), "description": current.get("description")}

    return aiohttp_jinja2.render_template("settings_account.html", request, {
        "page": "settings",
        "settings": sorted(settings, key=lambda s: s.get("settingKey", "")),
        "common_keys": sorted(COMMON_SETTING_KEYS),
        "effective": [
            (setting_key, effective[name]) for setting_key, name in sorted(COMMON_SETTING_KEYS.items())
            if effective.get(name) is not None
        ],
        "values": values,
        "errors": errors,
        "error": error,
    }, status=status)


@routes.get("/settings/account")
async def account_settings_page(request: web.Request) -> web.Response:
    return await _account_page(request, {"settingKey": request.query.get("key", "")}, {})


@routes.post("/settings/account")
async def save_account_setting(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.account_setting(data)
    except ValidationFailed as e:
        return await _account_page(request, submitted_values(data), e.errors, status=422)

    key = payload["settingKey"]
    async with journaled(request, "upsert", "account_setting", key, f"Account setting {key} saved"):
        await request["backend"].account_settings.upsert(key, payload["settingValue"], payload.get("description"))

    activity.settings(f"account setting {key} saved")
    flash(request, "success", "Setting saved", key)
    raise web.HTTPSeeOther("/settings/account")


@routes.post("/settings/account/{key}/delete")
async def delete_account_setting(request: web.Request) -> web.Response:
    key = request.match_info["key"]
    async with journaled(request, "delete", "account_setting", key, f"Account setting {key} deleted"):
        await request["backend"].account_settings.delete(key)

    activity.settings(f"account setting {key} deleted")
    flash(request, "success", "Setting deleted", key)
    raise redirect(request, "/settings/account")
