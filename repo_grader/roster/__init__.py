"""
Roster Matching
===============
Student roster loading and branch-to-student resolution.
"""

from .matcher import (
    BranchMatcher,
    Student,
    StrictTokenMatcher,
    TokenMatcher,
    get_matcher,
    load_roster,
    split_branch_name,
)

__all__ = [
    'BranchMatcher',
    'Student',
    'StrictTokenMatcher',
    'TokenMatcher',
    'get_matcher',
    'load_roster',
    'split_branch_name',
]
