"""
Output rendering for Time Capsule.

Output formats:
    - Console: Rich panels and tables with lock-state icons
    - JSON: Structured dictionaries for programmatic consumption
"""

from timecapsule.report.console import (
    format_address,
    format_duration,
    print_payload,
    print_status,
    print_status_table,
)
from timecapsule.report.json import meta_dict, payload_dict, status_dict, to_json

__all__ = [
    "format_address",
    "format_duration",
    "print_payload",
    "print_status",
    "print_status_table",
    "meta_dict",
    "payload_dict",
    "status_dict",
    "to_json",
]
