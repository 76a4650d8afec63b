import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from rich.logging import RichHandler

from patch_gate.cli.rich_display import (
    console,
    count_operations,
    print_error_panel,
    print_json_panel,
    print_result_panel,
    print_start_panel,
)
from patch_gate.errors import SnapshotError
from patch_gate.models import ValidationResult
from patch_gate.settings import get_settings

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_TEST_FAILED = 2
EXIT_BAD_INPUT = 3


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        description="Validate a JSON Patch against a document and schema before committing it.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check that a patch applies cleanly
  patch-gate --document cat.json --patch patch.json

  # Enforce a schema (fields with "immutable": true must not change)
  patch-gate -d cat.json -p patch.json --schema cat.schema.json

  # Save the patched document
  patch-gate -d cat.json -p patch.json -s cat.schema.json --output patched.json

Exit codes: 0 accepted, 1 rejected, 2 a test operation failed, 3 bad input.
""",
    )

    parser.add_argument(
        "--document", "-d", type=Path, required=True, help="Original JSON document"
    )
    parser.add_argument(
        "--patch", "-p", type=Path, required=True, help="JSON Patch file (array of operations)"
    )
    parser.add_argument(
        "--schema",
        "-s",
        type=Path,
        help="JSON Schema file for the patched document (optional)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Output file for the patched document (default: stdout)",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Format JSON with indentation",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Silent mode (plain JSON result, no panels)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every applied operation",
    )

    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else get_settings().LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _read_json(path: Optional[Path], what: str) -> Any:
    """Read and parse a JSON file, exiting with EXIT_BAD_INPUT on failure."""
    if path is None:
        return None
    if not path.exists():
        print(f"Error: {what} file not found: {path}", file=sys.stderr)
        sys.exit(EXIT_BAD_INPUT)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"Error: Invalid {what}: {e}", file=sys.stderr)
        sys.exit(EXIT_BAD_INPUT)


def exit_code_for(result: ValidationResult) -> int:
    if result.error is not None:
        return EXIT_REJECTED
    if result.test is False:
        return EXIT_TEST_FAILED
    return EXIT_OK


def _handle_output(result: ValidationResult, args: argparse.Namespace) -> None:
    """Write or print the result."""
    indent = 2 if args.pretty else None

    if args.quiet:
        print(json.dumps(result.model_dump(mode="json"), indent=indent, ensure_ascii=False))
        return

    if result.error is not None:
        print_error_panel(result.error.message, result.error.type)
        return

    if args.output:
        args.output.write_text(
            json.dumps(result.value, indent=indent, ensure_ascii=False), encoding="utf-8"
        )
        console.print(f"[green]Patched document saved in:[/green] {args.output}")
    else:
        print_json_panel(result.value)


def main():
    """Entry point of the CLI."""
    from patch_gate.main import validate

    parser = build_parser()
    args = parser.parse_args()
    configure_logging(args.verbose)

    document = _read_json(args.document, "document")
    patches = _read_json(args.patch, "patch")
    schema = _read_json(args.schema, "schema")

    if not isinstance(patches, list):
        print("Error: Invalid patch: expected a JSON array of operations", file=sys.stderr)
        sys.exit(EXIT_BAD_INPUT)

    if not args.quiet:
        print_start_panel(str(args.document), len(patches), schema is not None)

    try:
        result = validate(document, schema, patches)
    except SnapshotError as e:
        print(f"Error: Invalid document: {e}", file=sys.stderr)
        sys.exit(EXIT_BAD_INPUT)

    if not args.quiet and result.error is None:
        print_result_panel(result, count_operations(patches))
    _handle_output(result, args)
    sys.exit(exit_code_for(result))
