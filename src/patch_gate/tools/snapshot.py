from __future__ import annotations

import math
from typing import Any, Optional

from patch_gate.errors import SnapshotError
from patch_gate.settings import get_settings


def snapshot(document: Any, max_depth: Optional[int] = None) -> Any:
    """Return a reference-independent deep copy of a JSON-like document.

    Mapping key order and sequence order are preserved, tuples become lists.
    Anything a JSON round-trip could not represent raises ``SnapshotError``
    instead of being dropped or coerced.
    """
    if max_depth is None:
        max_depth = get_settings().MAX_DOCUMENT_DEPTH
    return _copy(document, max_depth, 0, set(), "")


def _copy(node: Any, max_depth: int, depth: int, ancestors: set[int], pointer: str) -> Any:
    if node is None or isinstance(node, (bool, str, int)):
        return node
    if isinstance(node, float):
        if math.isnan(node) or math.isinf(node):
            raise SnapshotError(f"non-finite number at {pointer or '/'}: {node!r}")
        return node

    if not isinstance(node, (dict, list, tuple)):
        raise SnapshotError(
            f"value of type {type(node).__name__} at {pointer or '/'} is not JSON-like"
        )
    if depth >= max_depth:
        raise SnapshotError(f"document nested deeper than {max_depth} levels at {pointer or '/'}")
    if id(node) in ancestors:
        raise SnapshotError(f"circular reference at {pointer or '/'}")

    ancestors.add(id(node))
    try:
        if isinstance(node, dict):
            out: dict[str, Any] = {}
            for key, value in node.items():
                if not isinstance(key, str):
                    raise SnapshotError(
                        f"mapping key {key!r} at {pointer or '/'} is not a string"
                    )
                out[key] = _copy(value, max_depth, depth + 1, ancestors, f"{pointer}/{key}")
            return out
        return [
            _copy(item, max_depth, depth + 1, ancestors, f"{pointer}/{i}")
            for i, item in enumerate(node)
        ]
    finally:
        ancestors.discard(id(node))


def deep_equal(a: Any, b: Any) -> bool:
    if a is b:
        return True
    # bool is an int subclass but never equals a number here
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if type(a) is not type(b):
        return False
    if isinstance(a, list):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    return a == b
