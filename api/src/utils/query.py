"""
Query string helpers for navigation links.

Nested values use the bracket/index notation of the ``qs`` library:
``{"a": {"b": "1"}, "c": ["x"]}`` <-> ``a%5Bb%5D=1&c%5B0%5D=x``.

``form_url_query`` and ``remove_keys_from_query`` build links relative to
the location of the request being served and refuse to run without one.
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, unquote_plus

from api.src.errors import EnvironmentContextError
from api.src.navigation import current_location

# qs converts index keys above this limit into plain object keys
ARRAY_LIMIT = 20

_KEY_PATTERN = re.compile(r"^([^\[\]]*)((?:\[[^\[\]]*\])*)$")
_SEGMENT_PATTERN = re.compile(r"\[([^\[\]]*)\]")

SearchParams = Union[str, Mapping[str, Any]]


def _split_key(key: str) -> List[str]:
    match = _KEY_PATTERN.match(key)
    if not match or not match.group(1):
        return [key]
    return [match.group(1)] + _SEGMENT_PATTERN.findall(match.group(2))


def _next_index(container: Dict[str, Any]) -> str:
    return str(sum(1 for key in container if key.isdigit()))


def _assign(container: Dict[str, Any], segments: List[str], value: str) -> None:
    key = segments[0] or _next_index(container)

    if len(segments) == 1:
        existing = container.get(key)
        if existing is None:
            container[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        elif isinstance(existing, str):
            container[key] = [existing, value]
        return

    child = container.get(key)
    if not isinstance(child, dict):
        child = {}
        container[key] = child
    _assign(child, segments[1:], value)


def _compact(value: Any) -> Any:
    if isinstance(value, list):
        return [_compact(item) for item in value]
    if not isinstance(value, dict):
        return value

    compacted = {key: _compact(item) for key, item in value.items()}
    if compacted and all(key.isdigit() and int(key) <= ARRAY_LIMIT for key in compacted):
        return [compacted[key] for key in sorted(compacted, key=int)]
    return compacted


def parse_query(query: str) -> Dict[str, Any]:
    """Parse a query string into nested dicts and lists."""
    result: Dict[str, Any] = {}
    for pair in query.lstrip("?").split("&"):
        if not pair:
            continue
        raw_key, _, raw_value = pair.partition("=")
        key = unquote_plus(raw_key)
        if not key:
            continue
        _assign(result, _split_key(key), unquote_plus(raw_value))
    return {key: _compact(value) for key, value in result.items()}


def _flatten(prefix: str, value: Any, skip_nulls: bool, out: List[Tuple[str, str]]) -> None:
    if value is None:
        if not skip_nulls:
            out.append((prefix, ""))
    elif isinstance(value, Mapping):
        for key, item in value.items():
            _flatten(f"{prefix}[{key}]", item, skip_nulls, out)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _flatten(f"{prefix}[{index}]", item, skip_nulls, out)
    elif isinstance(value, bool):
        out.append((prefix, "true" if value else "false"))
    else:
        out.append((prefix, str(value)))


def stringify_query(params: Mapping[str, Any], skip_nulls: bool = False) -> str:
    """Serialize nested params to a query string."""
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        _flatten(str(key), value, skip_nulls, pairs)
    return "&".join(f"{quote(key, safe='')}={quote(value, safe='')}" for key, value in pairs)


def _as_query_string(search_params: SearchParams) -> str:
    if isinstance(search_params, str):
        return search_params
    # starlette's QueryParams renders itself as an encoded query string
    if hasattr(search_params, "multi_items"):
        return str(search_params)
    return stringify_query(search_params)


def _require_location(helper: str) -> str:
    location = current_location.get()
    if location is None:
        raise EnvironmentContextError(f"`{helper}` can only be used while serving a request.")
    return location


def form_url_query(search_params: SearchParams, key: str, value: Optional[Any]) -> str:
    """
    Current path with ``key`` set to ``value`` in the query string.

    Params whose value is None are left out.

    Raises:
        EnvironmentContextError: Outside a request
    """
    location = _require_location("form_url_query")
    params = {**parse_query(_as_query_string(search_params)), key: value}
    return f"{location}?{stringify_query(params, skip_nulls=True)}"


def remove_keys_from_query(search_params: SearchParams, keys_to_remove: Iterable[str]) -> str:
    """
    Current path with ``keys_to_remove`` dropped from the query string.

    Raises:
        EnvironmentContextError: Outside a request
    """
    location = _require_location("remove_keys_from_query")
    params = parse_query(_as_query_string(search_params))

    for key in keys_to_remove:
        params.pop(key, None)

    params = {key: value for key, value in params.items() if value is not None}
    return f"{location}?{stringify_query(params)}"


def page_links(search_params: SearchParams, page: int, total_pages: int) -> Dict[str, Optional[str]]:
    """
    Previous and next page links for a paginated view at the current location.

    A page past the end links back to the last page.

    Raises:
        EnvironmentContextError: Outside a request
    """
    previous_page = min(page - 1, total_pages)
    return {
        "previous_page_url": form_url_query(search_params, "page", previous_page) if previous_page >= 1 else None,
        "next_page_url": form_url_query(search_params, "page", page + 1) if page < total_pages else None,
    }


def deep_merge(base: Optional[Mapping[str, Any]], overrides: Optional[Mapping[str, Any]]) -> Any:
    """
    Recursively merge two mappings.

    On a conflicting leaf, ``base`` wins. Nested mappings present on both
    sides are merged the same way; keys only in ``overrides`` are kept.
    """
    if overrides is None:
        return base

    output = dict(overrides)
    for key, value in (base or {}).items():
        other = overrides.get(key)
        if isinstance(value, Mapping) and isinstance(other, Mapping):
            output[key] = deep_merge(value, other)
        else:
            output[key] = value
    return output
