"""
Reporting
=========
JSON and grade-import CSV output.
"""

from .generator import (
    GRADE_IMPORT_FIELDS,
    ReportGenerator,
    build_grade_import_rows,
    format_summary,
    load_json_report,
)

__all__ = [
    'GRADE_IMPORT_FIELDS',
    'ReportGenerator',
    'build_grade_import_rows',
    'format_summary',
    'load_json_report',
]
