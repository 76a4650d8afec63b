from __future__ import annotations

import ipaddress
import json
import logging
import math
import re
from datetime import date, datetime, time
from typing import Any, Optional, Sequence
from urllib.parse import urlparse

from patch_gate.models import ErrorDetail, ErrorType, ValidationError
from patch_gate.tools.json_pointer import Token, get_at
from patch_gate.tools.snapshot import deep_equal, snapshot

logger = logging.getLogger(__name__)

ROOT_LABEL = "value"


def immutable(schema: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Mark a field schema as not allowed to change from the original document."""
    return {**(schema or {}), "immutable": True}


class _Failure:
    """First failure of a subtree: the composed message plus the leaf detail."""

    __slots__ = ("message", "detail")

    def __init__(self, message: str, detail: ErrorDetail):
        self.message = message
        self.detail = detail

    def wrap(self, prefix: str) -> _Failure:
        return _Failure(f"{prefix} fails because [{self.message}]", self.detail)


class SchemaValidator:
    """JSON Schema subset validator with an ``immutable`` keyword.

    The original document is passed down the recursion next to the current
    path so an ``immutable`` node can look up the same location in it.
    Validation stops at the first failing field.
    """

    _ANY_SCHEMA: dict[str, Any] = {"__any": True}

    _ARTICLE = {"array": "an", "object": "an", "integer": "an"}

    # ------------------------------------------------------------------
    # $ref handling
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_ref(schema: Any, root_schema: Any) -> Any:
        """Follow a chain of local ``#/...`` references (at most 10 hops)."""
        if not isinstance(schema, dict) or "$ref" not in schema:
            return schema
        seen: set[str] = set()
        current = schema
        for _ in range(10):
            if not isinstance(current, dict) or "$ref" not in current:
                return current
            ref = current["$ref"]
            if ref in seen or not isinstance(ref, str) or not ref.startswith("#/"):
                return current
            seen.add(ref)
            resolved = root_schema
            for part in ref[2:].split("/"):
                part = part.replace("~1", "/").replace("~0", "~")
                if not isinstance(resolved, dict):
                    return current
                resolved = resolved.get(part)
            if resolved is None:
                return current
            current = resolved
        return current

    @classmethod
    def inline_refs(cls, schema: Any, root_schema: Any, _seen: Optional[frozenset] = None) -> Any:
        """Return a copy of ``schema`` with every resolvable ``$ref`` inlined.

        A reference met again inside its own expansion becomes permissive.
        """
        if _seen is None:
            _seen = frozenset()
        if not isinstance(schema, dict):
            return schema

        if "$ref" in schema:
            ref = schema["$ref"]
            if ref in _seen:
                return cls._ANY_SCHEMA
            resolved = cls._resolve_ref(schema, root_schema)
            if resolved is schema:
                return schema
            siblings = {k: v for k, v in schema.items() if k != "$ref"}
            expanded = cls.inline_refs(resolved, root_schema, _seen | {ref})
            return {**expanded, **siblings} if siblings else expanded

        result = {}
        for key, val in schema.items():
            if key == "properties" and isinstance(val, dict):
                result[key] = {
                    k: cls.inline_refs(v, root_schema, _seen) for k, v in val.items()
                }
            elif key in ("items", "additionalProperties") and isinstance(val, dict):
                result[key] = cls.inline_refs(val, root_schema, _seen)
            elif key == "anyOf" and isinstance(val, list):
                result[key] = [cls.inline_refs(s, root_schema, _seen) for s in val]
            else:
                # definitions / $defs are only reached through $ref
                result[key] = val
        return result

    # ------------------------------------------------------------------
    # Types and formats
    # ------------------------------------------------------------------

    @staticmethod
    def type_of_instance(x: Any) -> str:
        if x is None:
            return "null"
        if isinstance(x, bool):
            return "boolean"
        if isinstance(x, list):
            return "array"
        if isinstance(x, dict):
            return "object"
        if isinstance(x, int):
            return "integer"
        if isinstance(x, float):
            # a float with no fractional part is also an integer
            if not (math.isinf(x) or math.isnan(x)) and x == int(x):
                return "integer"
            return "number"
        if isinstance(x, str):
            return "string"
        return type(x).__name__

    @staticmethod
    def _normalize_type(type_val: Any) -> Optional[list[str]]:
        if not type_val:
            return None
        if isinstance(type_val, list):
            return type_val
        return [type_val]

    @staticmethod
    def validate_format(fmt: str, value: str) -> bool:
        if fmt == "email":
            return bool(re.match(r"^[^\s@]+@[^\s@]+\.[^\s@]+$", value))

        if fmt == "date":
            if not re.match(r"^\d{4}-\d{2}-\d{2}$", value):
                return False
            try:
                date.fromisoformat(value)
            except ValueError:
                return False
            return True

        if fmt == "time":
            if not re.match(r"^\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})?$", value):
                return False
            try:
                time.fromisoformat(value.replace("Z", "+00:00").replace("z", "+00:00"))
            except ValueError:
                return False
            return True

        if fmt == "date-time":
            if not re.match(
                r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$",
                value,
            ):
                return False
            try:
                datetime.fromisoformat(value.replace("Z", "+00:00").replace("z", "+00:00"))
            except ValueError:
                return False
            return True

        if fmt == "uri":
            return bool(urlparse(value).scheme)

        if fmt == "hostname":
            if len(value) > 253:
                return False
            return all(
                re.match(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$", label)
                for label in value.split(".")
            )

        if fmt in ("ipv4", "ipv6"):
            try:
                addr = ipaddress.ip_address(value)
            except ValueError:
                return False
            return addr.version == (4 if fmt == "ipv4" else 6)

        if fmt == "uuid":
            return bool(
                re.match(
                    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}"
                    r"-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$",
                    value,
                )
            )

        if fmt == "json-pointer":
            if value == "":
                return True
            return value.startswith("/") and not re.search(r"~(?![01])", value)

        if fmt == "regex":
            try:
                re.compile(value)
            except re.error:
                return False
            return True

        # Unknown format: pass
        return True

    # ------------------------------------------------------------------
    # Failures
    # ------------------------------------------------------------------

    @staticmethod
    def _label(schema: Any, fallback: Token) -> str:
        if isinstance(schema, dict) and isinstance(schema.get("title"), str):
            return schema["title"]
        return str(fallback)

    @staticmethod
    def _fail(
        label: str,
        text: str,
        path: Sequence[Token],
        error_type: ErrorType = ErrorType.TYPE_OR_CONSTRAINT_VIOLATION,
        **context: Any,
    ) -> _Failure:
        message = f'"{label}" {text}'
        detail = ErrorDetail(
            message=message,
            path=list(path),
            type=error_type,
            context={"key": path[-1] if path else None, "label": label, **context},
        )
        return _Failure(message, detail)

    # ------------------------------------------------------------------
    # Recursive validation
    # ------------------------------------------------------------------

    @classmethod
    def _check_immutable(
        cls, schema: Any, present: bool, value: Any, path: list[Token], label: str, original: Any
    ) -> Optional[_Failure]:
        if not (isinstance(schema, dict) and schema.get("immutable")):
            return None
        before = get_at(original, path)
        if before["exists"] == present and (not present or deep_equal(before["value"], value)):
            return None
        return cls._fail(
            label,
            "is not allowed to be changed",
            path,
            ErrorType.IMMUTABLE_FIELD_CHANGED,
            original=before["value"],
            existed=before["exists"],
        )

    @classmethod
    def _check_removed(
        cls, schema: Any, path: list[Token], label: str, original: Any
    ) -> Optional[_Failure]:
        """Fail when the original held an immutable node at or under an absent ``path``."""
        before = get_at(original, path)
        if not before["exists"] or not isinstance(schema, dict):
            return None
        if schema.get("immutable"):
            return cls._check_immutable(schema, False, None, path, label, original)

        old = before["value"]
        if isinstance(old, dict):
            props = schema.get("properties") or {}
            for key, prop_schema in props.items():
                child_label = cls._label(prop_schema, key)
                failure = cls._check_removed(prop_schema, path + [key], child_label, original)
                if failure:
                    return failure.wrap(f'child "{child_label}"')
            ap = schema.get("additionalProperties")
            if isinstance(ap, dict):
                for key in old:
                    if key in props:
                        continue
                    child_label = cls._label(ap, key)
                    failure = cls._check_removed(ap, path + [key], child_label, original)
                    if failure:
                        return failure.wrap(f'child "{child_label}"')
        elif isinstance(old, list) and isinstance(schema.get("items"), dict):
            item_schema = schema["items"]
            for i in range(len(old)):
                failure = cls._check_removed(item_schema, path + [i], cls._label(item_schema, i), original)
                if failure:
                    return failure.wrap(f'"{label}" at position {i}')
        return None

    @classmethod
    def _check_scalar(cls, schema: dict[str, Any], value: Any, inst_type: str, path, label) -> Optional[_Failure]:
        if inst_type == "string":
            if isinstance(schema.get("minLength"), int) and len(value) < schema["minLength"]:
                return cls._fail(
                    label,
                    f"length must be at least {schema['minLength']} characters long",
                    path, limit=schema["minLength"],
                )
            if isinstance(schema.get("maxLength"), int) and len(value) > schema["maxLength"]:
                return cls._fail(
                    label,
                    f"length must be less than or equal to {schema['maxLength']} characters long",
                    path, limit=schema["maxLength"],
                )
            pattern = schema.get("pattern")
            if pattern:
                try:
                    matched = re.search(pattern, value)
                except re.error as exc:
                    return cls._fail(
                        label,
                        f"cannot be checked against an invalid pattern: {pattern}",
                        path, pattern=pattern, reason=str(exc),
                    )
                if not matched:
                    return cls._fail(
                        label,
                        f'with value "{value}" fails to match the required pattern: {pattern}',
                        path, pattern=pattern,
                    )
            if schema.get("format") and not cls.validate_format(schema["format"], value):
                return cls._fail(
                    label, f"must be a valid {schema['format']}", path, format=schema["format"]
                )

        if inst_type in ("number", "integer"):
            bounds = (
                ("minimum", lambda v, b: v >= b, "must be larger than or equal to"),
                ("maximum", lambda v, b: v <= b, "must be less than or equal to"),
                ("exclusiveMinimum", lambda v, b: v > b, "must be greater than"),
                ("exclusiveMaximum", lambda v, b: v < b, "must be less than"),
            )
            for keyword, ok, text in bounds:
                limit = schema.get(keyword)
                if isinstance(limit, (int, float)) and not isinstance(limit, bool):
                    if not ok(value, limit):
                        return cls._fail(label, f"{text} {limit}", path, limit=limit)
            step = schema.get("multipleOf")
            if isinstance(step, (int, float)) and not isinstance(step, bool) and step > 0:
                q = value / step
                if not math.isclose(q, round(q), rel_tol=0, abs_tol=1e-9):
                    return cls._fail(label, f"must be a multiple of {step}", path, multiple=step)

        if inst_type == "array":
            if isinstance(schema.get("minItems"), int) and len(value) < schema["minItems"]:
                return cls._fail(
                    label, f"must contain at least {schema['minItems']} items",
                    path, limit=schema["minItems"],
                )
            if isinstance(schema.get("maxItems"), int) and len(value) > schema["maxItems"]:
                return cls._fail(
                    label, f"must contain less than or equal to {schema['maxItems']} items",
                    path, limit=schema["maxItems"],
                )
        return None

    @classmethod
    def _validate_missing(
        cls, schema: Any, required: bool, path: list[Token], label: str, original: Any
    ) -> tuple[bool, Any, Optional[_Failure]]:
        """Handle an absent field; returns (present_in_output, value, failure)."""
        if required:
            return False, None, cls._fail(
                label, "is required", path, ErrorType.REQUIRED_FIELD_MISSING
            )
        failure = cls._check_removed(schema, path, label, original)
        if failure:
            return False, None, failure
        if isinstance(schema, dict) and "default" in schema:
            return True, snapshot(schema["default"]), None
        return False, None, None

    @classmethod
    def _validate_object(
        cls, schema: dict[str, Any], value: dict[str, Any], path: list[Token], original: Any
    ) -> tuple[Any, Optional[_Failure]]:
        props = schema.get("properties") or {}
        required = schema.get("required") or []
        out = dict(value)

        for key, prop_schema in props.items():
            child_path = path + [key]
            child_label = cls._label(prop_schema, key)
            if key in value:
                child, failure = cls.validate_value(prop_schema, value[key], child_path, child_label, original)
                present = True
            else:
                present, child, failure = cls._validate_missing(
                    prop_schema, key in required, child_path, child_label, original
                )
            if failure:
                return value, failure.wrap(f'child "{child_label}"')
            if present:
                out[key] = child

        for key in required:
            if key not in props and key not in value:
                return value, cls._fail(
                    key, "is required", path + [key], ErrorType.REQUIRED_FIELD_MISSING
                ).wrap(f'child "{key}"')

        ap = schema.get("additionalProperties")
        for key, child_value in value.items():
            if key in props:
                continue
            if ap is False:
                return value, cls._fail(key, "is not allowed", path + [key]).wrap(f'child "{key}"')
            if isinstance(ap, dict):
                child_label = cls._label(ap, key)
                child, failure = cls.validate_value(ap, child_value, path + [key], child_label, original)
                if failure:
                    return value, failure.wrap(f'child "{child_label}"')
                out[key] = child

        # extra keys the patch removed
        if isinstance(ap, dict):
            before = get_at(original, path)
            if before["exists"] and isinstance(before["value"], dict):
                for key in before["value"]:
                    if key in props or key in value:
                        continue
                    child_label = cls._label(ap, key)
                    failure = cls._check_removed(ap, path + [key], child_label, original)
                    if failure:
                        return value, failure.wrap(f'child "{child_label}"')
        return out, None

    @classmethod
    def _validate_array(
        cls, schema: dict[str, Any], value: list[Any], path: list[Token], label: str, original: Any
    ) -> tuple[Any, Optional[_Failure]]:
        item_schema = schema.get("items")
        if not isinstance(item_schema, dict):
            return value, None
        out = []
        for i, item in enumerate(value):
            child, failure = cls.validate_value(
                item_schema, item, path + [i], cls._label(item_schema, i), original
            )
            if failure:
                return value, failure.wrap(f'"{label}" at position {i}')
            out.append(child)

        before = get_at(original, path)
        if before["exists"] and isinstance(before["value"], list):
            for i in range(len(value), len(before["value"])):
                failure = cls._check_removed(item_schema, path + [i], cls._label(item_schema, i), original)
                if failure:
                    return value, failure.wrap(f'"{label}" at position {i}')
        return out, None

    @classmethod
    def validate_value(
        cls, schema: Any, value: Any, path: list[Token], label: str, original: Any
    ) -> tuple[Any, Optional[_Failure]]:
        """Validate a present value; returns (output value, first failure)."""
        if schema is None or schema is True:
            return value, None
        if schema is False:
            return value, cls._fail(label, "is not allowed", path)
        if not isinstance(schema, dict) or schema.get("__any"):
            return value, None

        if "anyOf" in schema:
            for alternative in schema["anyOf"]:
                out, failure = cls.validate_value(alternative, value, path, label, original)
                if failure is None:
                    break
            else:
                return value, cls._fail(label, "does not match any of the allowed types", path)
            value_out = out
        else:
            value_out = value

        if "enum" in schema and not any(deep_equal(v, value) for v in schema["enum"]):
            allowed = ", ".join(json.dumps(v) for v in schema["enum"])
            return value, cls._fail(label, f"must be one of [{allowed}]", path, valids=schema["enum"])
        if "const" in schema and not deep_equal(schema["const"], value):
            return value, cls._fail(label, f"must be {json.dumps(schema['const'])}", path, valids=[schema["const"]])

        inst_type = cls.type_of_instance(value)
        allowed_types = cls._normalize_type(schema.get("type"))
        if allowed_types:
            # "integer" is a subtype of "number"
            if not (inst_type in allowed_types or (inst_type == "integer" and "number" in allowed_types)):
                if len(allowed_types) == 1:
                    expected = allowed_types[0]
                    text = f"must be {cls._ARTICLE.get(expected, 'a')} {expected}"
                else:
                    text = f"must be one of [{', '.join(allowed_types)}]"
                return value, cls._fail(label, text, path, expected=allowed_types, received=inst_type)

        failure = cls._check_scalar(schema, value, inst_type, path, label)
        if failure:
            return value, failure

        if inst_type == "object":
            value_out, failure = cls._validate_object(schema, value, path, original)
        elif inst_type == "array":
            value_out, failure = cls._validate_array(schema, value, path, label, original)
        if failure:
            return value, failure

        failure = cls._check_immutable(schema, True, value, path, label, original)
        if failure:
            return value, failure
        return value_out, None

    @classmethod
    def validate(cls, schema: Any, document: Any, original: Any) -> dict[str, Any]:
        """Validate ``document`` against ``schema``, comparing immutable
        fields with ``original``.

        Returns ``{"value": ..., "error": ValidationError | None}``. The value
        carries defaults on success and is None on failure.
        """
        if isinstance(schema, dict):
            schema = cls.inline_refs(schema, schema)
        value, failure = cls.validate_value(
            schema, document, [], cls._label(schema, ROOT_LABEL), original
        )
        if failure is None:
            return {"value": value, "error": None}
        logger.debug("document rejected at %s: %s", failure.detail.path, failure.detail.message)
        return {
            "value": None,
            "error": ValidationError(message=failure.message, details=[failure.detail]),
        }


def validate_document(schema: Any, document: Any, original: Any) -> dict[str, Any]:
    """
    Validate a patched document against a schema.

    Args:
        schema: JSON Schema (subset) where any node may carry
                ``"immutable": true``.
        document: The patched working document.
        original: The document before patching; immutable nodes compare
                  against the same path in it.

    Returns:
        Dict with value (validated document with defaults, None on failure)
        and error (ValidationError or None).
    """
    return SchemaValidator.validate(schema, document, original)
