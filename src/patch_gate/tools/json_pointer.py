from __future__ import annotations

import re
from typing import Any, Optional, Sequence, Union

Token = Union[str, int]

_INDEX_RE = re.compile(r"^(0|[1-9][0-9]*)$")


def decode_pointer_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def encode_pointer_token(token: Token) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def parse_json_pointer(path: str) -> list[str]:
    """Split an RFC 6901 pointer into unescaped tokens.

    ``""`` is the whole document. ``"/"`` addresses the key ``""`` of the
    root mapping.
    """
    if path == "":
        return []
    if not path.startswith("/"):
        raise ValueError(f'Invalid JSON Pointer (must start with "/"): {path}')
    return [decode_pointer_token(t) for t in path.split("/")[1:]]


def format_json_pointer(tokens: Sequence[Token]) -> str:
    return "".join(f"/{encode_pointer_token(t)}" for t in tokens)


def parse_array_index(token: Token, length: int, allow_end: bool = False) -> Optional[int]:
    """Return the list index addressed by ``token`` or ``None``.

    ``allow_end`` admits ``"-"`` and ``length`` itself (insertion point).
    """
    if isinstance(token, bool):
        return None
    if isinstance(token, int):
        idx = token
    elif token == "-":
        return length if allow_end else None
    elif _INDEX_RE.match(token):
        idx = int(token)
    else:
        return None
    limit = length if allow_end else length - 1
    if idx < 0 or idx > limit:
        return None
    return idx


def get_at(doc: Any, tokens: Sequence[Token]) -> dict[str, Any]:
    cur = doc
    for t in tokens:
        if isinstance(cur, list):
            idx = parse_array_index(t, len(cur))
            if idx is None:
                return {"exists": False, "value": None}
            cur = cur[idx]
        elif isinstance(cur, dict):
            key = str(t)
            if key not in cur:
                return {"exists": False, "value": None}
            cur = cur[key]
        else:
            return {"exists": False, "value": None}
    return {"exists": True, "value": cur}


def get_parent_and_key(doc: Any, tokens: Sequence[Token]) -> dict[str, Any]:
    if len(tokens) == 0:
        return {"parent": None, "key": None}
    key = tokens[-1]
    res = get_at(doc, tokens[:-1])
    if not res["exists"]:
        return {"parent": None, "key": key}
    return {"parent": res["value"], "key": key}


def is_proper_prefix(prefix: Sequence[Token], tokens: Sequence[Token]) -> bool:
    if len(prefix) >= len(tokens):
        return False
    return [str(t) for t in prefix] == [str(t) for t in tokens[: len(prefix)]]
