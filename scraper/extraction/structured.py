"""Tolerant reader for embedded JSON (ld+json blocks, hydration payloads).

Listing pages routinely ship structured data with trailing commas, a BOM or
an HTML comment wrapper. A strict parser would throw away the richest data
source on the page over a single character, so parsing here never raises.
"""

from __future__ import annotations

import json
import re
from collections import deque
from typing import Any, Callable, Iterable, Iterator

_COMMENT_OPEN = re.compile(r"^\s*<!--")
_COMMENT_CLOSE = re.compile(r"-->\s*$")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_MISSING = object()


def sanitize(text: str | None) -> str:
    """Strip BOM, comment wrappers and trailing commas from a JSON blob."""
    text = text or ""
    if text.startswith("\ufeff"):
        text = text[1:]
    text = _COMMENT_OPEN.sub("", text)
    text = _COMMENT_CLOSE.sub("", text)
    return _TRAILING_COMMA.sub(r"\1", text)


def safe_parse(text: str | None) -> Any | None:
    """Parse a possibly malformed JSON blob, returning ``None`` on failure."""
    try:
        return json.loads(sanitize(text))
    except (TypeError, ValueError, RecursionError):
        return None


def iter_objects(value: Any) -> Iterator[dict[str, Any]]:
    """Yield every JSON object in an ld+json document.

    Documents may be a single object, a list of objects, or an object with an
    ``@graph`` array; all three are flattened.
    """
    if isinstance(value, list):
        for item in value:
            yield from iter_objects(item)
    elif isinstance(value, dict):
        yield value
        graph = value.get("@graph")
        if isinstance(graph, list):
            yield from iter_objects(graph)


def find_first(
    value: Any,
    keys: Iterable[str],
    accept: Callable[[Any], bool] | None = None,
    max_nodes: int = 50_000,
) -> Any | None:
    """Breadth-first search for the first value stored under one of ``keys``.

    Within one object, ``keys`` are tried in the order given. ``accept`` can
    reject a candidate (for example an empty string or an unrelated nested
    object) so the search keeps going.
    """
    keys = tuple(keys)
    queue: deque[Any] = deque([value])
    visited = 0

    while queue and visited < max_nodes:
        node = queue.popleft()
        visited += 1

        if isinstance(node, dict):
            for key in keys:
                candidate = node.get(key, _MISSING)
                if candidate is _MISSING or candidate is None:
                    continue
                if accept is None or accept(candidate):
                    return candidate
            queue.extend(v for v in node.values() if isinstance(v, (dict, list)))
        elif isinstance(node, list):
            queue.extend(v for v in node if isinstance(v, (dict, list)))

    return None
