from .app import main
from .rich_display import (
    console,
    count_operations,
    create_operations_table,
    print_error_panel,
    print_json_panel,
    print_result_panel,
    print_start_panel,
)

__all__ = [
    "main",
    "console",
    "count_operations",
    "create_operations_table",
    "print_error_panel",
    "print_json_panel",
    "print_result_panel",
    "print_start_panel",
]
