from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from patch_gate.models import ValidationError, ValidationResult
from patch_gate.tools.apply_patches import apply_patches
from patch_gate.tools.schema_validator import validate_document
from patch_gate.tools.snapshot import snapshot

logger = logging.getLogger(__name__)


def validate(
    original: Any,
    schema: Optional[dict[str, Any]],
    patches: Sequence[Any],
) -> ValidationResult:
    """
    Validate a proposed patch against a schema before it is committed.

    This is the main function of the package API. The original document is
    never mutated: patches are applied to a snapshot, and fields marked
    ``"immutable": true`` in the schema are compared with the original.

    Args:
        original: The document as currently stored (JSON-like tree).
        schema: JSON Schema for the patched document. If None, only the
                patch itself is checked.
        patches: JSON Patch operations (RFC 6902), applied in order.

    Returns:
        A frozen ValidationResult with:
        - value: The patched document (with schema defaults on success).
        - error: The first failure (patch path error first, then schema),
          or None.
        - test: None without "test" operations, else whether all passed.

    Raises:
        SnapshotError: If the original is not a JSON-like tree.

    Example:
        >>> from patch_gate import immutable, validate
        >>> schema = {"type": "object", "properties": {"id": immutable({"type": "string"})}}
        >>> res = validate({"id": "k1"}, schema, [{"op": "replace", "path": "/id", "value": "k2"}])
        >>> res.error.message
        'child "id" fails because ["id" is not allowed to be changed]'
    """
    working = snapshot(original)
    outcome = apply_patches(working, patches)

    if outcome["errors"]:
        first = outcome["errors"][0]
        return ValidationResult(
            value=outcome["document"],
            error=ValidationError(message=first.message, details=[first]),
            test=outcome["test"],
        )

    if schema is None:
        return ValidationResult(value=outcome["document"], test=outcome["test"])

    checked = validate_document(schema, outcome["document"], original)
    if checked["error"] is not None:
        logger.info("patch rejected: %s", checked["error"].message)
        return ValidationResult(
            value=outcome["document"],
            error=checked["error"],
            test=outcome["test"],
        )
    return ValidationResult(value=checked["value"], test=outcome["test"])


def main():
    """Entry point of the CLI."""
    from patch_gate.cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
