from patch_gate.tools.snapshot import deep_equal, snapshot
from patch_gate.tools.apply_patches import apply_patches
from patch_gate.tools.schema_validator import immutable, validate_document

__all__ = [
    "snapshot",
    "deep_equal",
    "apply_patches",
    "immutable",
    "validate_document",
]
