from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ErrorType(str, Enum):
    PATH_NOT_FOUND = "path_not_found"
    INVALID_OPERATION = "invalid_operation"
    REQUIRED_FIELD_MISSING = "required_field_missing"
    IMMUTABLE_FIELD_CHANGED = "immutable_field_changed"
    TYPE_OR_CONSTRAINT_VIOLATION = "type_or_constraint_violation"


# ======================================================================
# Patch operations
# ======================================================================
class PatchOperation(BaseModel):
    """A single RFC 6902 operation.

    ``value`` may legitimately be ``None`` (JSON ``null``), so whether it was
    supplied at all is read from ``model_fields_set``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    op: Literal["add", "remove", "replace", "move", "copy", "test"]
    path: str
    value: Any = None
    from_: Optional[str] = Field(default=None, alias="from")

    @property
    def has_value(self) -> bool:
        return "value" in self.model_fields_set

    @model_validator(mode="after")
    def _check_operands(self) -> PatchOperation:
        if self.op in ("add", "replace", "test") and not self.has_value:
            raise ValueError(f'operation "{self.op}" requires field "value"')
        if self.op in ("move", "copy") and self.from_ is None:
            raise ValueError(f'operation "{self.op}" requires field "from"')
        return self


class TestOutcome(BaseModel):
    """Result of one ``test`` operation. A mismatch is data, not an error."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    index: int
    path: str
    passed: bool
    expected: Any = None
    actual: Any = None
    found: bool = True


# ======================================================================
# Validation errors and result
# ======================================================================
class ErrorDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    path: list[Union[str, int]] = Field(default_factory=list)
    type: ErrorType
    context: dict[str, Any] = Field(default_factory=dict)


class ValidationError(BaseModel):
    """First failure of a validation call.

    ``message`` is path qualified (each containing field wraps the inner
    message), ``details`` holds the structured leaf failure.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    details: list[ErrorDetail] = Field(default_factory=list)

    @property
    def type(self) -> Optional[ErrorType]:
        return self.details[0].type if self.details else None


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Any = None
    error: Optional[ValidationError] = None
    test: Optional[bool] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.test is not False
