"""Stable operation identifiers.

An identifier joins the dialect coordinates of an operation into a slug.
The normalized variant replaces every path-parameter segment (``{name}``)
with ``*`` so that renaming a path parameter keeps the identity.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlsplit

from apidelta.kernel.operation import ApiType, Operation


PATH_PARAM_PLACEHOLDER = "*"

_PATH_PARAMETER_RE = re.compile(r"\{.*?\}")
_SEPARATOR_RE = re.compile(r"[\s/.(){}]")
_SAFE_CHARS = set("abcdefghijklmnopqrstuvwxyz0123456789_*~-")
_DASHES_RE = re.compile(r"-{2,}")

GRAPHQL_SECTIONS = {
    "queries": "query",
    "mutations": "mutation",
    "subscriptions": "subscription",
}


def slugify(text: str) -> str:
    """Lower-case slug with ``/ . ( ) { }`` and whitespace mapped to ``-``.

    Any other character outside ``[a-z0-9_*~-]`` is percent-escaped, runs of
    dashes collapse to one, and leading/trailing dashes are dropped.
    """
    if not text:
        return ""
    mapped = _SEPARATOR_RE.sub("-", text.lower())
    escaped = "".join(ch if ch in _SAFE_CHARS else quote(ch, safe="") for ch in mapped)
    return _DASHES_RE.sub("-", escaped).strip("-")


def remove_first_slash(value: str) -> str:
    return value[1:] if value.startswith("/") else value


def hide_path_param_names(path: str) -> str:
    return _PATH_PARAMETER_RE.sub(PATH_PARAM_PLACEHOLDER, path)


def get_operation_base_path(servers: Optional[List[Dict[str, Any]]]) -> str:
    """Path component of the first server URL, with server variables substituted."""
    if not isinstance(servers, list) or not servers:
        return ""
    first = servers[0]
    if not isinstance(first, dict) or not isinstance(first.get("url"), str):
        return ""
    url = first["url"]
    for name, variable in (first.get("variables") or {}).items():
        default = variable.get("default", "") if isinstance(variable, dict) else ""
        url = url.replace("{" + name + "}", str(default))
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    if path and not path.startswith("/"):
        path = "/" + path
    return path[:-1] if path.endswith("/") else path


def rest_operation_id(base_path: str, path: str, method: str) -> str:
    return slugify(f"{remove_first_slash(base_path + path)}-{method}")


def rest_normalized_operation_id(base_path: str, path: str, method: str) -> str:
    return slugify(f"{remove_first_slash(hide_path_param_names(base_path + path))}-{method}")


def asyncapi_operation_id(action: str, channel: str) -> str:
    return slugify(f"{action}-{channel}")


def graphql_operation_id(kind: str, name: str) -> str:
    return slugify(f"{kind}-{name}")


def group_slug(group: Optional[str]) -> str:
    """Slug of a group prefix such as ``/api/v1`` (``api-v1``)."""
    return slugify(remove_first_slash(group or ""))


def strip_group_prefix(operation_id: str, slug: str) -> Optional[str]:
    """Operation id without the ``<slug>-`` prefix, or None when it is outside the group."""
    if not slug:
        return operation_id
    prefix = slug + "-"
    if not operation_id.startswith(prefix):
        return None
    return operation_id[len(prefix):]


def normalized_operation_id(operation: Operation) -> str:
    """Normalized identifier; equals ``operation_id`` for dialects without path parameters."""
    if operation.api_type == ApiType.REST:
        path = operation.metadata.get("path")
        method = operation.metadata.get("method")
        if isinstance(path, str) and isinstance(method, str):
            base_path = operation.metadata.get("base_path") or ""
            return rest_normalized_operation_id(base_path, path, method)
    return operation.operation_id
