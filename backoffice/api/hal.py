"""HAL document helpers: embedded lists, self links, ids, URI templates."""

import re
from typing import Any

_TEMPLATE_VAR = re.compile(r"\{([?&]?)([^}]*)\}")


def embedded(collection: Any, key: str | None = None) -> list[dict]:
    """Return the items under ``_embedded[key]`` (first key if not given)."""
    if isinstance(collection, list):
        return collection
    if not isinstance(collection, dict):
        return []
    emb = collection.get("_embedded")
    if not isinstance(emb, dict) or not emb:
        return []
    if key is None:
        key = next(iter(emb))
    items = emb.get(key)
    return items if isinstance(items, list) else []


def link_href(resource: dict, rel: str) -> str | None:
    link = (resource.get("_links") or {}).get(rel)
    if isinstance(link, list):
        link = link[0] if link else None
    if isinstance(link, dict):
        return link.get("href")
    return None


def self_href(resource: dict) -> str | None:
    return link_href(resource, "self")


def id_from_href(href: str | None) -> int | None:
    """Parse the trailing numeric id out of an entity URI.

    Templated suffixes (``{?projection}``) and query strings are ignored.
    """
    if not href:
        return None
    path = href.split("{", 1)[0].split("?", 1)[0].rstrip("/")
    tail = path.rsplit("/", 1)[-1]
    try:
        return int(tail)
    except ValueError:
        return None


def resource_id(resource: dict) -> int | None:
    """The resource's ``id`` field, or the id in its self link."""
    rid = resource.get("id")
    if rid is not None:
        try:
            return int(rid)
        except (TypeError, ValueError):
            return None
    return id_from_href(self_href(resource))


def with_ids(items: list[dict]) -> list[dict]:
    """Copy each item with ``id`` filled in from its self link if missing."""
    return [{**item, "id": resource_id(item)} for item in items]


def page_info(collection: Any) -> dict:
    """Normalised Spring Data page metadata."""
    page = collection.get("page") if isinstance(collection, dict) else None
    if not isinstance(page, dict):
        count = len(embedded(collection))
        return {"size": count, "totalElements": count, "totalPages": 1, "number": 0}
    return {
        "size": int(page.get("size", 0)),
        "totalElements": int(page.get("totalElements", 0)),
        "totalPages": int(page.get("totalPages", 0)),
        "number": int(page.get("number", 0)),
    }


def entity_uri(base_url: str, resource: str, entity_id: int | str) -> str:
    return f"{base_url.rstrip('/')}/api/{resource}/{entity_id}"


def expand_template(template: str, params: dict[str, Any]) -> str:
    """Expand the RFC 6570 subset the backend emits.

    ``{x}`` is a path substitution, ``{?x,y}`` starts a query string and
    ``{&x}`` continues one. Variables without a value are dropped.
    """

    def _sub(match: re.Match) -> str:
        op, names = match.group(1), match.group(2)
        if not op:
            value = params.get(names)
            return "" if value is None else str(value)
        pairs = [
            f"{name}={params[name]}"
            for name in (n.strip() for n in names.split(","))
            if params.get(name) is not None
        ]
        if not pairs:
            return ""
        return ("?" if op == "?" else "&") + "&".join(pairs)

    return _TEMPLATE_VAR.sub(_sub, template)
