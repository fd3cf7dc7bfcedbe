"""
Branch-to-Student Matching
==========================
Resolves a submission branch such as ``feature/ev1GarciaLopezAnaMaria`` to a
roster record.

The branch suffix is split before every uppercase letter and read
positionally as surname 1, surname 2, given name 1, given name 2. This is a
heuristic: compound names, missing second surnames or two students sharing
tokens can all produce wrong or ambiguous matches, so every ambiguous match
is logged and the strategy is pluggable.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type
import logging

logger = logging.getLogger(__name__)

MAX_NAME_TOKENS = 4

# Accepted roster keys, English first, then the LMS export's column names
SURNAME_KEYS = ('surnames', 'apellidos')
NAME_KEYS = ('name', 'names', 'nombre')
EMAIL_KEYS = ('email', 'direccindecorreo')


@dataclass(frozen=True)
class Student:
    """A roster record."""
    surnames: str
    names: str
    email: str

    @property
    def surname_words(self) -> List[str]:
        return self.surnames.lower().split()

    @property
    def name_words(self) -> List[str]:
        return self.names.lower().split()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional['Student']:
        """Build a student from a roster record; None when a field is missing."""
        surnames = _first_present(data, SURNAME_KEYS)
        names = _first_present(data, NAME_KEYS)
        email = _first_present(data, EMAIL_KEYS)
        if not surnames or not names:
            logger.warning(f"Incomplete roster record skipped: {dict(data)!r}")
            return None
        return cls(surnames=surnames.strip(), names=names.strip(), email=(email or '').strip())


def _first_present(data: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return None


def load_roster(path: str) -> List[Student]:
    """Load a JSON array of roster records, skipping incomplete ones."""
    with open(Path(path), 'r', encoding='utf-8') as f:
        records = json.load(f)

    if not isinstance(records, list):
        raise ValueError(f"Roster {path} must contain a JSON array")

    students = [student for student in (Student.from_dict(record) for record in records) if student]
    logger.info(f"Loaded {len(students)} students from {path}")
    return students


def split_branch_name(branch: str, prefix: str = 'feature/ev1') -> List[str]:
    """
    Split a branch suffix into at most four lower-cased name tokens.

    A new token starts at every uppercase character (accented ones
    included). Leading text before the first uppercase letter is kept as a
    token of its own.
    """
    suffix = branch[len(prefix):] if prefix and branch.startswith(prefix) else branch

    tokens: List[str] = []
    current = ''
    for char in suffix:
        if char.isupper() and current:
            tokens.append(current)
            current = char
        else:
            current += char
    if current:
        tokens.append(current)

    return [token.lower() for token in tokens[:MAX_NAME_TOKENS]]


class BranchMatcher:
    """Base class for branch-to-student strategies."""

    name = 'base'

    def __init__(self, prefix: str = 'feature/ev1'):
        self.prefix = prefix

    def candidates(self, branch: str, roster: Sequence[Student]) -> List[Student]:
        raise NotImplementedError

    def match(self, branch: str, roster: Sequence[Student]) -> Optional[Student]:
        """
        Return the first matching student, or None.

        More than one candidate is reported as ambiguous; the first one in
        roster order is still returned.
        """
        found = self.candidates(branch, roster)
        if not found:
            logger.warning(f"No student found for branch {branch}")
            return None
        if len(found) > 1:
            logger.warning(
                f"Ambiguous match for branch {branch}: "
                f"{', '.join(student.email or student.surnames for student in found)}; using the first"
            )
        return found[0]


class TokenMatcher(BranchMatcher):
    """One surname token and one given-name token must each be found."""

    name = 'tokens'

    def candidates(self, branch: str, roster: Sequence[Student]) -> List[Student]:
        tokens = split_branch_name(branch, self.prefix) + [''] * MAX_NAME_TOKENS
        surnames = [token for token in tokens[:2] if token]
        names = [token for token in tokens[2:4] if token]
        logger.debug(f"Looking up branch {branch}: surnames={surnames}, names={names}")

        return [
            student for student in roster
            if any(token in student.surname_words for token in surnames)
            and any(token in student.name_words for token in names)
        ]


class StrictTokenMatcher(BranchMatcher):
    """Every token of the branch must appear among the student's words."""

    name = 'strict'

    def candidates(self, branch: str, roster: Sequence[Student]) -> List[Student]:
        tokens = split_branch_name(branch, self.prefix)
        if not tokens:
            return []
        return [
            student for student in roster
            if all(token in student.surname_words + student.name_words for token in tokens)
        ]


MATCHERS: Dict[str, Type[BranchMatcher]] = {
    TokenMatcher.name: TokenMatcher,
    StrictTokenMatcher.name: StrictTokenMatcher,
}


def get_matcher(name: str = 'tokens', prefix: str = 'feature/ev1') -> BranchMatcher:
    try:
        return MATCHERS[name](prefix=prefix)
    except KeyError:
        raise ValueError(f"Unknown matcher '{name}'. Available: {', '.join(sorted(MATCHERS))}")
