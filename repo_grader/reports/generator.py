#!/usr/bin/env python3
"""
Grading Report Generator
========================
Writes branch evaluations to disk and builds the grade-import file.

Supports:
- JSON: full array of branch evaluations
- CSV: one row per student for a grade-import system, joining two
  evaluation reports (one per exercise) with the roster
- Console summary table

Author: Repo Grader Team
"""

import json
import csv
from pathlib import Path
from typing import List, Dict, Any, Optional, Sequence, Union

import logging

from ..scoring.aggregator import BranchEvaluation, count_submissions
from ..roster.matcher import BranchMatcher, Student

logger = logging.getLogger(__name__)

GRADE_IMPORT_FIELDS = [
    'email',
    'exercise 1 grade',
    'exercise 2 grade',
    'exercise 1 comments',
    'exercise 2 comments'
]

COMMENT_SEPARATOR = '; '

# What the grade columns hold
IMPORT_VALUES = ('grade', 'total')


class ReportGenerator:
    """
    Generates grading reports.

    Paths passed to the write methods are resolved against ``output_dir``
    unless they are absolute.
    """

    def __init__(self, output_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the report generator.

        Args:
            output_dir: Directory for saving generated reports
        """
        self.output_dir = Path(output_dir) if output_dir else Path.cwd()
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, filename: Union[str, Path]) -> Path:
        path = Path(filename)
        return path if path.is_absolute() else self.output_dir / path

    def write_json(self, evaluations: Sequence[BranchEvaluation],
                   filename: Union[str, Path]) -> Path:
        """
        Write evaluations as a JSON array.

        Returns:
            Path to the generated report file
        """
        filepath = self._resolve(filename)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump([evaluation.to_dict() for evaluation in evaluations], f, indent=2, ensure_ascii=False)

        logger.info(f"Results saved to {filepath}")
        return filepath

    def write_grade_import_csv(self, rows: Sequence[Dict[str, Any]],
                               filename: Union[str, Path]) -> Path:
        """
        Write the grade-import CSV with its fixed five-column header.

        Returns:
            Path to the generated CSV file
        """
        filepath = self._resolve(filename)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=GRADE_IMPORT_FIELDS)
            writer.writeheader()
            for row in rows:
                writer.writerow(row)

        logger.info(f"Grade import file written to {filepath} ({len(rows)} rows)")
        return filepath


def load_json_report(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load a JSON array of evaluation records written by ``write_json``."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"Report {path} must contain a JSON array")
    return data


def _exercise_value(record: Optional[Dict[str, Any]], value: str = 'grade') -> Union[float, str]:
    if record is None:
        return ''
    if value == 'grade' and record.get('grade') is not None:
        return record['grade']
    return record.get('total', '')


def _exercise_comments(record: Optional[Dict[str, Any]]) -> str:
    if record is None:
        return ''
    return COMMENT_SEPARATOR.join(record.get('comments', []))


def build_grade_import_rows(roster: Sequence[Student],
                            first: Sequence[Dict[str, Any]],
                            second: Sequence[Dict[str, Any]],
                            matcher: BranchMatcher,
                            value: str = 'grade') -> List[Dict[str, Any]]:
    """
    Join two evaluation reports with the roster, one row per matched branch.

    The first report drives the rows; branches missing from the second
    report get empty exercise 2 cells. Branches that match no student are
    dropped with a warning.

    Args:
        value: 'grade' writes the 0-10 grade (the raw total when a record has
            no grade), 'total' always writes the raw total
    """
    if value not in IMPORT_VALUES:
        raise ValueError(f"Unknown import value '{value}', expected one of {', '.join(IMPORT_VALUES)}")

    second_by_branch = {record.get('branch'): record for record in second}
    rows = []

    for record in first:
        branch = record.get('branch', '')
        student = matcher.match(branch, roster)
        if student is None:
            logger.warning(f"Dropping branch {branch}: no student matched")
            continue

        other = second_by_branch.get(branch)
        rows.append({
            'email': student.email,
            'exercise 1 grade': _exercise_value(record, value),
            'exercise 2 grade': _exercise_value(other, value),
            'exercise 1 comments': _exercise_comments(record),
            'exercise 2 comments': _exercise_comments(other)
        })

    return rows


def format_summary(evaluations: Sequence[BranchEvaluation]) -> str:
    """Console table of branch results followed by the submission count."""
    lines = [
        f"{'Branch':<45} {'Path':<30} {'Penalty':>7} {'Total':>8} {'Grade':>6}",
        "-" * 100
    ]
    for evaluation in evaluations:
        path = evaluation.path_used or 'not found'
        if len(path) > 30:
            path = '...' + path[-27:]
        grade = '-' if evaluation.grade is None else f"{evaluation.grade:.1f}"
        status = f"  ERROR: {evaluation.error}" if evaluation.error else ''
        lines.append(
            f"{evaluation.branch:<45} {path:<30} {evaluation.penalty:>7g} "
            f"{evaluation.total:>8.2f} {grade:>6}{status}"
        )
    lines.append("-" * 100)
    lines.append(f"Valid submissions found: {count_submissions(evaluations)} of {len(evaluations)}")
    return '\n'.join(lines)
