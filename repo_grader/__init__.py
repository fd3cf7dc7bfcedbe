#!/usr/bin/env python3
"""
Repo Grader
===========

Grades student submissions stored as branches of a GitHub repository:

1. Source access: branch, directory and file reads over the GitHub REST API
2. Evaluation: declarative weighted rubrics applied to the files found
3. Reporting: JSON evaluation reports and a grade-import CSV joined with
   the student roster

Author: Repo Grader Team
"""

__version__ = "1.0.0"
__author__ = "Repo Grader Team"

from repo_grader.pipeline import GradingOrchestrator
from repo_grader.scoring.plans import load_plan

__all__ = ['GradingOrchestrator', 'load_plan']
