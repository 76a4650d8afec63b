from __future__ import annotations

from typing import Any, Optional

from patch_gate.models import ErrorType


class SnapshotError(ValueError):
    """The document is not a JSON-like tree (cycle, bad key, foreign type)."""


class PatchError(ValueError):
    error_type: ErrorType = ErrorType.INVALID_OPERATION

    def __init__(self, message: str, pointer: str = "", context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.pointer = pointer
        self.context = context or {}


class PathNotFoundError(PatchError):
    error_type = ErrorType.PATH_NOT_FOUND


class InvalidOperationError(PatchError):
    error_type = ErrorType.INVALID_OPERATION
