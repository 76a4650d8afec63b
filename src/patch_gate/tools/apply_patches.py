from __future__ import annotations

import logging
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError as ModelValidationError
from typing_extensions import TypedDict

from patch_gate.errors import InvalidOperationError, PatchError, PathNotFoundError
from patch_gate.models import ErrorDetail, PatchOperation, TestOutcome
from patch_gate.settings import get_settings
from patch_gate.tools.json_pointer import (
    get_at,
    get_parent_and_key,
    is_proper_prefix,
    parse_array_index,
    parse_json_pointer,
)
from patch_gate.tools.snapshot import deep_equal, snapshot

logger = logging.getLogger(__name__)


class PatchOutcome(TypedDict):
    document: Any
    errors: list[ErrorDetail]
    tests: list[TestOutcome]
    test: Optional[bool]


class PatchApplicator:
    """Applies RFC 6902 operations in order to one working document.

    The document passed in is mutated; callers isolate it beforehand.
    Failures of non-test operations raise ``PatchError`` internally and are
    collected as ``ErrorDetail`` data by ``apply``.
    """

    @staticmethod
    def _parse_operation(raw: Any) -> PatchOperation:
        if isinstance(raw, PatchOperation):
            return raw
        if not isinstance(raw, dict):
            raise InvalidOperationError("invalid operation (not an object)")
        try:
            return PatchOperation.model_validate(raw)
        except ModelValidationError as e:
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ())) or "operation"
            msg = first.get("msg", "invalid").removeprefix("Value error, ")
            raise InvalidOperationError(
                f"invalid operation ({loc}: {msg})",
                pointer=raw.get("path", "") if isinstance(raw.get("path"), str) else "",
            ) from e

    @staticmethod
    def _tokens(pointer: str) -> list[str]:
        try:
            return parse_json_pointer(pointer)
        except ValueError as e:
            raise InvalidOperationError(str(e), pointer=pointer) from e

    @classmethod
    def _add(cls, doc: Any, tokens: list[str], value: Any, pointer: str) -> Any:
        if len(tokens) == 0:
            return value
        pk = get_parent_and_key(doc, tokens)
        parent, key = pk["parent"], pk["key"]
        if isinstance(parent, list):
            idx = parse_array_index(key, len(parent), allow_end=True)
            if idx is None:
                raise PathNotFoundError(
                    f"add failed: invalid index '{key}' for array of length {len(parent)}",
                    pointer=pointer,
                )
            parent.insert(idx, value)
            return doc
        if isinstance(parent, dict):
            parent[key] = value
            return doc
        raise PathNotFoundError(
            f"add failed: parent of {pointer} does not exist", pointer=pointer
        )

    @classmethod
    def _remove(cls, doc: Any, tokens: list[str], pointer: str) -> tuple[Any, Any]:
        if len(tokens) == 0:
            raise InvalidOperationError(
                "remove failed: the document root cannot be removed", pointer=pointer
            )
        pk = get_parent_and_key(doc, tokens)
        parent, key = pk["parent"], pk["key"]
        if isinstance(parent, list):
            idx = parse_array_index(key, len(parent))
            if idx is not None:
                return doc, parent.pop(idx)
        elif isinstance(parent, dict) and key in parent:
            return doc, parent.pop(key)
        raise PathNotFoundError(f"remove failed: {pointer} does not exist", pointer=pointer)

    @classmethod
    def _replace(cls, doc: Any, tokens: list[str], value: Any, pointer: str) -> Any:
        if len(tokens) == 0:
            return value
        if not get_at(doc, tokens)["exists"]:
            raise PathNotFoundError(f"replace failed: {pointer} does not exist", pointer=pointer)
        pk = get_parent_and_key(doc, tokens)
        parent, key = pk["parent"], pk["key"]
        if isinstance(parent, list):
            parent[parse_array_index(key, len(parent))] = value
        else:
            parent[key] = value
        return doc

    @classmethod
    def _move(cls, doc: Any, op: PatchOperation) -> Any:
        tokens = cls._tokens(op.path)
        from_tokens = cls._tokens(op.from_)
        src = get_at(doc, from_tokens)
        if not src["exists"]:
            raise PathNotFoundError(
                f"move failed: from={op.from_} does not exist", pointer=op.from_
            )
        if is_proper_prefix(from_tokens, tokens):
            raise InvalidOperationError(
                f"move failed: cannot move {op.from_} into its own child {op.path}",
                pointer=op.path,
            )
        if from_tokens == tokens:
            return doc

        src_parent = get_parent_and_key(doc, from_tokens)["parent"]
        order = list(src_parent) if isinstance(src_parent, dict) else None
        doc, moved = cls._remove(doc, from_tokens, op.from_)
        try:
            return cls._add(doc, tokens, moved, op.path)
        except PatchError:
            # put the value back where it was, keeping key order
            key = from_tokens[-1]
            if isinstance(src_parent, list):
                src_parent.insert(int(key), moved)
            else:
                rebuilt = {k: (moved if k == key else src_parent[k]) for k in order}
                src_parent.clear()
                src_parent.update(rebuilt)
            raise

    @classmethod
    def _copy(cls, doc: Any, op: PatchOperation) -> Any:
        tokens = cls._tokens(op.path)
        src = get_at(doc, cls._tokens(op.from_))
        if not src["exists"]:
            raise PathNotFoundError(
                f"copy failed: from={op.from_} does not exist", pointer=op.from_
            )
        return cls._add(doc, tokens, snapshot(src["value"]), op.path)

    @classmethod
    def _run_test(cls, doc: Any, op: PatchOperation, index: int) -> TestOutcome:
        found = get_at(doc, cls._tokens(op.path))
        passed = found["exists"] and deep_equal(found["value"], op.value)
        if not passed:
            logger.debug("test operation %d failed at %s", index, op.path or "/")
        return TestOutcome(
            index=index,
            path=op.path,
            passed=passed,
            expected=op.value,
            actual=found["value"],
            found=found["exists"],
        )

    @classmethod
    def apply_operation(cls, doc: Any, op: PatchOperation) -> Any:
        """Apply one non-test operation and return the (possibly new) root."""
        if op.op == "add":
            return cls._add(doc, cls._tokens(op.path), snapshot(op.value), op.path)
        if op.op == "remove":
            doc, _ = cls._remove(doc, cls._tokens(op.path), op.path)
            return doc
        if op.op == "replace":
            return cls._replace(doc, cls._tokens(op.path), snapshot(op.value), op.path)
        if op.op == "move":
            return cls._move(doc, op)
        if op.op == "copy":
            return cls._copy(doc, op)
        raise InvalidOperationError(f"Operation not supported: {op.op}", pointer=op.path)

    @staticmethod
    def _error_detail(index: int, raw: Any, err: PatchError) -> ErrorDetail:
        try:
            path: list[Union[str, int]] = list(parse_json_pointer(err.pointer))
        except ValueError:
            path = []
        op_name = raw.get("op") if isinstance(raw, dict) else getattr(raw, "op", None)
        return ErrorDetail(
            message=err.message,
            path=path,
            type=err.error_type,
            context={"op_index": index, "op": op_name, "pointer": err.pointer, **err.context},
        )

    @classmethod
    def apply(
        cls,
        document: Any,
        patches: Sequence[Any],
        stop_on_error: Optional[bool] = None,
    ) -> PatchOutcome:
        if stop_on_error is None:
            stop_on_error = get_settings().STOP_ON_PATCH_ERROR

        current = document
        errors: list[ErrorDetail] = []
        tests: list[TestOutcome] = []

        for i, raw in enumerate(patches):
            try:
                op = cls._parse_operation(raw)
                if op.op == "test":
                    tests.append(cls._run_test(current, op, i))
                    continue
                current = cls.apply_operation(current, op)
            except PatchError as e:
                logger.warning("Skipping patch operation %d: %s", i, e.message)
                errors.append(cls._error_detail(i, raw, e))
                if stop_on_error:
                    break
            else:
                logger.debug("Applied %s at %s", op.op, op.path or "/")

        return {
            "document": current,
            "errors": errors,
            "tests": tests,
            "test": all(t.passed for t in tests) if tests else None,
        }


def apply_patches(
    document: Any,
    patches: Sequence[Any],
    stop_on_error: Optional[bool] = None,
) -> PatchOutcome:
    """
    Apply JSON Patch operations to a working document, in order.

    Args:
        document: The working document. It is mutated in place; pass a
                  snapshot if the caller's reference must survive.
        patches: JSON Patch operations (RFC 6902), as dicts or
                 ``PatchOperation`` models.
        stop_on_error: Skip the remaining operations after the first failed
                       non-test operation. If None, uses
                       Settings.STOP_ON_PATCH_ERROR.

    Returns:
        PatchOutcome with document (the new root), errors (one ErrorDetail
        per skipped operation), tests (one TestOutcome per test operation)
        and test (None without test operations, else whether all passed).
    """
    return PatchApplicator.apply(document, patches, stop_on_error)
