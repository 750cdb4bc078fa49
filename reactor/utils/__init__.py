"""Utility modules for reactor."""

from .logging import get_logger, setup_logging
from .report import build_report_table, build_status_table, print_report

__all__ = [
    "setup_logging",
    "get_logger",
    "build_status_table",
    "build_report_table",
    "print_report",
]
