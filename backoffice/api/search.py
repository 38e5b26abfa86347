"""
Search endpoint selection.

Spring Data REST exposes one ``/search/<method>`` per query. The search
forms send whatever criteria the operator filled in; the most specific
matching method wins.
"""

from dataclasses import dataclass, field
from typing import Any

PAGING_KEYS = ("page", "size", "sort")


@dataclass(frozen=True)
class SearchRule:
    method: str
    keys: tuple[str, ...] = ()
    rename: dict[str, str] = field(default_factory=dict)
    # Matches whenever more than one criterion is present; sends all of them
    flexible: bool = False


def clean_criteria(params: dict[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
    """Keep allowed criteria that actually carry a value."""
    criteria = {}
    for key in allowed:
        value = params.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        criteria[key] = value
    return criteria


def paging(params: dict[str, Any], sort: str = "name,asc", size: int = 20) -> dict[str, Any]:
    return {
        "page": params.get("page") if params.get("page") is not None else 0,
        "size": params.get("size") or size,
        "sort": params.get("sort") or sort,
    }


def select_search(criteria: dict[str, Any], rules: list[SearchRule]) -> tuple[str | None, dict[str, Any]]:
    """Pick the first rule whose keys are all present.

    Returns (method, query) where method is None when no rule matches and
    the plain collection should be listed.
    """
    for rule in rules:
        if rule.flexible:
            if len(criteria) > 1:
                return rule.method, dict(criteria)
            continue
        if rule.keys and all(k in criteria for k in rule.keys):
            return rule.method, {rule.rename.get(k, k): criteria[k] for k in rule.keys}
    return None, {}
