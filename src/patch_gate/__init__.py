from patch_gate.errors import SnapshotError
from patch_gate.main import validate
from patch_gate.models import (
    ErrorDetail,
    ErrorType,
    PatchOperation,
    TestOutcome,
    ValidationError,
    ValidationResult,
)
from patch_gate.tools.schema_validator import immutable

__all__ = [
    "validate",
    "immutable",
    "ErrorDetail",
    "ErrorType",
    "PatchOperation",
    "SnapshotError",
    "TestOutcome",
    "ValidationError",
    "ValidationResult",
]
