#!/usr/bin/env python3
"""
Rubric Evaluation Engine
========================
Declarative, weighted criteria applied to submitted file text.

A rubric is an ordered tuple of criteria. Each criterion owns a predicate
(text -> bool or score), a weight acting as its upper bound, a feedback
message and a scope:

- content: evaluated against the text of every fetched file whose name
  matches the criterion's ``files`` glob
- listing: evaluated once against the newline-joined names of all files found
- branch:  evaluated once against the branch name

When several texts are evaluated for the same criterion the best score is
kept, so repeated evaluation can never lower a score already achieved.

Predicates can be built in Python with the helpers below or from plain
dictionaries (see ``build_predicate``), which is how YAML plans describe them.

Author: Repo Grader Team
"""

import fnmatch
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

logger = logging.getLogger(__name__)

Predicate = Callable[[str], Union[bool, float]]

NOT_MET_TEMPLATE = "Criterion not met: {description}"


class RubricError(ValueError):
    """Raised for malformed criteria or predicate definitions."""
    pass


class CriterionScope(Enum):
    """What a criterion's predicate is applied to."""
    CONTENT = "content"
    LISTING = "listing"
    BRANCH = "branch"


# ================================================================================
# PREDICATE BUILDERS
# ================================================================================

def _truthy(value: Union[bool, float]) -> bool:
    return bool(value) and value > 0


def contains_all(*terms: str, ignore_case: bool = False) -> Predicate:
    """True when every term occurs in the text."""
    if ignore_case:
        lowered = [term.lower() for term in terms]
        return lambda text: all(term in text.lower() for term in lowered)
    return lambda text: all(term in text for term in terms)


def contains_any(*terms: str, ignore_case: bool = False) -> Predicate:
    """True when at least one term occurs in the text."""
    if ignore_case:
        lowered = [term.lower() for term in terms]
        return lambda text: any(term in text.lower() for term in lowered)
    return lambda text: any(term in text for term in terms)


def regex(pattern: str, ignore_case: bool = False, multiline: bool = True) -> Predicate:
    """True when the regular expression matches anywhere in the text."""
    flags = (re.IGNORECASE if ignore_case else 0) | (re.MULTILINE if multiline else 0)
    try:
        compiled = re.compile(pattern, flags)
    except re.error as e:
        raise RubricError(f"Invalid regular expression {pattern!r}: {e}")
    return lambda text: compiled.search(text) is not None


def all_of(*predicates: Predicate) -> Predicate:
    """True when every predicate passes."""
    return lambda text: all(_truthy(predicate(text)) for predicate in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    """True when at least one predicate passes."""
    return lambda text: any(_truthy(predicate(text)) for predicate in predicates)


def not_(predicate: Predicate) -> Predicate:
    return lambda text: not _truthy(predicate(text))


def always(score: Union[bool, float] = True) -> Predicate:
    return lambda text: score


def tiers(*levels: Tuple[Predicate, float], default: float = 0.0) -> Predicate:
    """
    Partial credit: the score of the first passing level, else ``default``.

    Example (full weight for a constructor call, half for a bare mention):
        tiers((regex(r'BufferedReader\\s*\\('), 2), (contains_any('BufferedReader'), 1))
    """
    def evaluate(text: str) -> float:
        for predicate, score in levels:
            if _truthy(predicate(text)):
                return score
        return default
    return evaluate


def count(pattern: str, per_match: float, cap: Optional[float] = None,
          ignore_case: bool = False) -> Predicate:
    """Score ``per_match`` for every match of the pattern, up to ``cap``."""
    flags = re.MULTILINE | (re.IGNORECASE if ignore_case else 0)
    try:
        compiled = re.compile(pattern, flags)
    except re.error as e:
        raise RubricError(f"Invalid regular expression {pattern!r}: {e}")

    def evaluate(text: str) -> float:
        score = len(compiled.findall(text)) * per_match
        return min(score, cap) if cap is not None else score
    return evaluate


def _terms(value: Any) -> Tuple[List[str], bool]:
    if isinstance(value, str):
        return [value], False
    if isinstance(value, Mapping):
        return list(value.get('terms', [])), bool(value.get('ignore_case', False))
    return list(value), False


def _build_regex(value: Any) -> Predicate:
    if isinstance(value, str):
        return regex(value)
    return regex(value['pattern'], ignore_case=value.get('ignore_case', False),
                 multiline=value.get('multiline', True))


def _build_tiers(value: Any, definition: Mapping[str, Any]) -> Predicate:
    levels = []
    for level in value:
        if 'when' not in level or 'score' not in level:
            raise RubricError(f"Each tier needs 'when' and 'score': {level!r}")
        levels.append((build_predicate(level['when']), float(level['score'])))
    return tiers(*levels, default=float(definition.get('default', 0.0)))


def _build_count(value: Any) -> Predicate:
    if isinstance(value, str):
        raise RubricError("'count' needs a mapping with 'pattern' and 'per_match'")
    return count(value['pattern'], float(value['per_match']), value.get('cap'),
                 ignore_case=value.get('ignore_case', False))


PREDICATE_BUILDERS: Dict[str, Callable[..., Predicate]] = {
    'contains_all': lambda value, definition: contains_all(*_terms(value)[0], ignore_case=_terms(value)[1]),
    'contains_any': lambda value, definition: contains_any(*_terms(value)[0], ignore_case=_terms(value)[1]),
    'regex': lambda value, definition: _build_regex(value),
    'all_of': lambda value, definition: all_of(*(build_predicate(item) for item in value)),
    'any_of': lambda value, definition: any_of(*(build_predicate(item) for item in value)),
    'not': lambda value, definition: not_(build_predicate(value)),
    'always': lambda value, definition: always(value),
    'tiers': _build_tiers,
    'count': lambda value, definition: _build_count(value),
}


def build_predicate(definition: Any) -> Predicate:
    """
    Build a predicate from its dictionary form.

    The dictionary holds exactly one predicate kind, e.g.
    ``{'contains_all': ['async', 'await']}`` or
    ``{'tiers': [{'when': {...}, 'score': 2}], 'default': 0}``.
    Callables are returned unchanged.

    Raises:
        RubricError: For unknown kinds or malformed arguments
    """
    if callable(definition):
        return definition

    if not isinstance(definition, Mapping):
        raise RubricError(f"Predicate must be a mapping, got {type(definition).__name__}")

    kinds = [key for key in definition if key in PREDICATE_BUILDERS]
    if len(kinds) != 1:
        raise RubricError(
            f"Predicate must name exactly one of {sorted(PREDICATE_BUILDERS)}: {dict(definition)!r}"
        )

    kind = kinds[0]
    try:
        return PREDICATE_BUILDERS[kind](definition[kind], definition)
    except (KeyError, TypeError, ValueError) as e:
        if isinstance(e, RubricError):
            raise
        raise RubricError(f"Invalid '{kind}' predicate {dict(definition)!r}: {e}")


# ================================================================================
# DATA MODEL
# ================================================================================

@dataclass(frozen=True)
class Criterion:
    """A single named, weighted rubric check."""
    identifier: str
    description: str
    weight: float
    predicate: Predicate
    feedback: str = ''
    scope: CriterionScope = CriterionScope.CONTENT
    files: str = '*'
    # (min_score, message) pairs, highest threshold first
    feedback_levels: Tuple[Tuple[float, str], ...] = ()

    def __post_init__(self):
        if self.weight < 0:
            raise RubricError(f"Criterion '{self.identifier}' has a negative weight")

    def feedback_for(self, score: float) -> str:
        """
        Message for a score: the first feedback level whose threshold the
        score reaches, else the plain feedback when the score is positive.
        """
        for min_score, message in self.feedback_levels:
            if score >= min_score:
                return message
        if score > 0:
            return self.feedback
        return NOT_MET_TEMPLATE.format(description=self.description)

    def applies_to(self, file_name: str) -> bool:
        return fnmatch.fnmatchcase(file_name, self.files)

    def score(self, text: Optional[str]) -> float:
        """
        Score a text; absent text is scored as the empty string.

        Boolean results map to the full weight or zero, numeric results are
        clamped to [0, weight].
        """
        result = self.predicate(text or '')
        if isinstance(result, bool):
            return float(self.weight) if result else 0.0
        return max(0.0, min(float(result), float(self.weight)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Criterion':
        try:
            identifier = data['id']
            return cls(
                identifier=identifier,
                description=data.get('description', identifier),
                weight=float(data['weight']),
                predicate=build_predicate(data['predicate']),
                feedback=data.get('feedback', ''),
                scope=CriterionScope(data.get('scope', 'content')),
                files=data.get('files', '*'),
                feedback_levels=tuple(sorted(
                    ((float(level['min_score']), level['feedback'])
                     for level in data.get('feedback_levels') or []),
                    key=lambda level: level[0],
                    reverse=True,
                )),
            )
        except KeyError as e:
            raise RubricError(f"Criterion is missing required key {e}: {dict(data)!r}")
        except (TypeError, ValueError) as e:
            if isinstance(e, RubricError):
                raise
            raise RubricError(f"Invalid criterion {data.get('id', '?')!r}: {e}")


@dataclass(frozen=True)
class CriterionResult:
    """Outcome of one criterion against one text."""
    identifier: str
    score: float
    feedback: str
    source: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.score > 0


@dataclass(frozen=True)
class Rubric:
    """Ordered criteria of one exercise."""
    name: str
    criteria: Tuple[Criterion, ...]
    expected_max: Optional[float] = None

    def __post_init__(self):
        identifiers = [criterion.identifier for criterion in self.criteria]
        duplicates = {identifier for identifier in identifiers if identifiers.count(identifier) > 1}
        if duplicates:
            raise RubricError(f"Rubric '{self.name}' repeats criteria: {', '.join(sorted(duplicates))}")
        if self.expected_max is not None and self.expected_max <= 0:
            raise RubricError(f"Rubric '{self.name}' needs a positive expected_max")

    @property
    def max_score(self) -> float:
        return sum(criterion.weight for criterion in self.criteria)

    @property
    def denominator(self) -> float:
        """Raw score that maps to a full grade."""
        return self.expected_max if self.expected_max is not None else self.max_score

    def needs_content(self, file_name: str) -> bool:
        return any(
            criterion.scope is CriterionScope.CONTENT and criterion.applies_to(file_name)
            for criterion in self.criteria
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Rubric':
        if 'criteria' not in data or not data['criteria']:
            raise RubricError(f"Rubric '{data.get('name', '?')}' has no criteria")
        expected_max = data.get('expected_max')
        return cls(
            name=data.get('name', 'default'),
            criteria=tuple(Criterion.from_dict(item) for item in data['criteria']),
            expected_max=float(expected_max) if expected_max is not None else None,
        )


@dataclass(frozen=True)
class RubricOutcome:
    """Best result per criterion for one branch."""
    rubric: str
    results: Tuple[CriterionResult, ...]
    comments: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def scores(self) -> Dict[str, float]:
        return {result.identifier: result.score for result in self.results}

    @property
    def total(self) -> float:
        return sum(result.score for result in self.results)


# ================================================================================
# EVALUATOR
# ================================================================================

class RubricEvaluator:
    """Applies a rubric to the files of a branch."""

    def __init__(self, rubric: Rubric):
        self.rubric = rubric

    def evaluate_text(self, text: Optional[str], scope: CriterionScope,
                      source: Optional[str] = None,
                      file_name: Optional[str] = None) -> List[CriterionResult]:
        """
        Evaluate every criterion of ``scope`` against one text.

        For content criteria, ``file_name`` restricts evaluation to the
        criteria whose glob matches it.
        """
        results = []
        for criterion in self.rubric.criteria:
            if criterion.scope is not scope:
                continue
            if file_name is not None and not criterion.applies_to(file_name):
                continue

            score = criterion.score(text)
            results.append(CriterionResult(criterion.identifier, score, criterion.feedback_for(score), source))
        return results

    def evaluate(self, branch: str, files: Mapping[str, Optional[str]]) -> RubricOutcome:
        """
        Evaluate the rubric over a branch.

        Args:
            branch: Branch name (text of branch-scoped criteria)
            files: Repository path -> text (None when absent or not fetched)

        Returns:
            RubricOutcome with the best score per criterion, in rubric order
        """
        best: Dict[str, CriterionResult] = {}

        def keep_best(results: Sequence[CriterionResult]) -> None:
            for result in results:
                current = best.get(result.identifier)
                if current is None or result.score > current.score:
                    best[result.identifier] = result

        keep_best(self.evaluate_text(branch, CriterionScope.BRANCH, source='branch'))

        listing = '\n'.join(PurePosixPath(path).name for path in files)
        keep_best(self.evaluate_text(listing, CriterionScope.LISTING, source='listing'))

        for path, text in files.items():
            name = PurePosixPath(path).name
            keep_best(self.evaluate_text(text, CriterionScope.CONTENT, source=path, file_name=name))

        # Content criteria that matched no file are scored against empty text
        unmatched = [
            criterion for criterion in self.rubric.criteria
            if criterion.scope is CriterionScope.CONTENT and criterion.identifier not in best
        ]
        for criterion in unmatched:
            score = criterion.score(None)
            best[criterion.identifier] = CriterionResult(criterion.identifier, score, criterion.feedback_for(score))

        results = tuple(best[criterion.identifier] for criterion in self.rubric.criteria)
        comments = tuple(self._comment(criterion, best[criterion.identifier])
                         for criterion in self.rubric.criteria)

        outcome = RubricOutcome(rubric=self.rubric.name, results=results, comments=comments)
        logger.debug(f"Rubric '{self.rubric.name}' on {branch}: {outcome.total:.2f}/{self.rubric.max_score:.2f}")
        return outcome

    @staticmethod
    def _comment(criterion: Criterion, result: CriterionResult) -> str:
        if not result.passed:
            return result.feedback

        message = result.feedback or f"Criterion met: {criterion.description}"
        if result.source and result.source not in ('branch', 'listing'):
            message = f"{message} ({result.source})"
        if result.score < criterion.weight and not criterion.feedback_levels:
            message = f"{message} (partial)"
        return message
