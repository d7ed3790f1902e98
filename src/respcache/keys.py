"""Cache key construction for request targets."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple
from urllib.parse import urlencode


def normalize_path(path: str) -> str:
    path = path.strip() or "/"
    if not path.startswith("/"):
        path = f"/{path}"
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def cache_key(path: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Build a stable key from a path and its query parameters.

    Parameters are sorted and ``None`` values dropped, so ``{"page": 2, "q": "x"}``
    and ``{"q": "x", "page": 2}`` share a key.
    """
    path = normalize_path(path)
    if not params:
        return path
    pairs: List[Tuple[str, str]] = []
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((name, str(item)) for item in value)
        else:
            pairs.append((name, str(value)))
    return f"{path}?{urlencode(pairs)}" if pairs else path


def scope_of(path: str) -> Tuple[List[str], List[str]]:
    """Keys and prefixes covering a resource: itself, its query variants and sub-resources."""
    path = normalize_path(path)
    return [path], [f"{path}?", f"{path.rstrip('/')}/"]


def parent_collection(path: str) -> Optional[str]:
    path = normalize_path(path)
    if path == "/":
        return None
    parent = path.rsplit("/", 1)[0]
    return parent or None
