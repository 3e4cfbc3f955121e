"""
Utilities package
Logging, formatting helpers and input validation
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
    log_performance,
    get_current_log_file
)
from .helpers import (
    format_duration,
    format_file_size,
    truncate_string,
    get_current_timestamp,
    parse_timestamp,
    read_json_file,
    write_json_atomic
)

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'OperationLogger',
    'create_operation_logger',
    'log_performance',
    'get_current_log_file',

    # Helper exports
    'format_duration',
    'format_file_size',
    'truncate_string',
    'get_current_timestamp',
    'parse_timestamp',
    'read_json_file',
    'write_json_atomic'
]
