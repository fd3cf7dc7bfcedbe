"""
Score Aggregator
================
Combines per-exercise rubric outcomes into a branch evaluation and a 0-10 grade.

Author: Repo Grader Team
"""

from typing import Dict, Optional, Sequence, Tuple, Any, Iterable
from dataclasses import dataclass, field
import logging

from .rubric import RubricOutcome
from .plans import GradingPlan

logger = logging.getLogger(__name__)

MAX_GRADE = 10.0


@dataclass(frozen=True)
class BranchEvaluation:
    """Graded submission of one branch; the unit written to reports."""
    branch: str
    files: Tuple[str, ...] = ()
    scores: Dict[str, float] = field(default_factory=dict)
    comments: Tuple[str, ...] = ()
    grades: Dict[str, float] = field(default_factory=dict)
    grade: Optional[float] = None
    path_used: Optional[str] = None
    penalty: float = 0.0
    error: Optional[str] = None

    @property
    def total(self) -> float:
        """Sum of the best score of every criterion."""
        return sum(self.scores.values())

    @property
    def has_files(self) -> bool:
        return bool(self.files)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'branch': self.branch,
            'files': list(self.files),
            'path_used': self.path_used,
            'scores': {key: round(value, 2) for key, value in self.scores.items()},
            'total': round(self.total, 2),
            'penalty': self.penalty,
            'grades': dict(self.grades),
            'grade': self.grade,
            'comments': list(self.comments),
            'error': self.error
        }


def rescale(raw_score: float, expected_max: float, scale: float = MAX_GRADE) -> float:
    """
    Map a raw score onto 0..scale: ``min(raw / expected_max * scale, scale)``.

    Raw scores above the expected maximum clamp to the top of the scale;
    negative scores clamp to zero.
    """
    if expected_max <= 0:
        logger.warning(f"Non-positive expected maximum {expected_max}, grading as 0")
        return 0.0
    return max(0.0, min(raw_score / expected_max * scale, scale))


def count_submissions(evaluations: Iterable[BranchEvaluation]) -> int:
    """Number of branches in which at least one file was found."""
    return sum(1 for evaluation in evaluations if evaluation.has_files)


class ScoreAggregator:
    """
    Aggregates rubric outcomes into a BranchEvaluation.

    Each exercise is graded on its own (penalty subtracted from its raw
    score first) and the final grade is the mean of the exercise grades,
    never exceeding the top of the scale.
    """

    def __init__(self, scale: float = MAX_GRADE):
        self.scale = scale

    def exercise_grade(self, raw_score: float, expected_max: float, penalty: float = 0.0) -> float:
        return round(rescale(raw_score - penalty, expected_max, self.scale), 1)

    def final_grade(self, grades: Sequence[float]) -> Optional[float]:
        if not grades:
            return None
        mean = sum(grades) / len(grades)
        return round(max(0.0, min(mean, self.scale)), 1)

    def aggregate(self, branch: str, plan: GradingPlan, outcomes: Sequence[RubricOutcome],
                  files: Sequence[str] = (), path_used: Optional[str] = None,
                  penalty: float = 0.0) -> BranchEvaluation:
        """
        Build the evaluation of a branch from one outcome per plan exercise.

        Criterion identifiers are qualified with the exercise name when the
        plan has more than one exercise, so the flat score mapping never
        merges criteria of different exercises.
        """
        qualify = len(outcomes) > 1
        rubrics = {rubric.name: rubric for rubric in plan.exercises}

        scores: Dict[str, float] = {}
        comments = []
        grades: Dict[str, float] = {}

        for outcome in outcomes:
            for identifier, score in outcome.scores.items():
                key = f"{outcome.rubric}.{identifier}" if qualify else identifier
                scores[key] = score

            prefix = f"[{outcome.rubric}] " if qualify else ''
            comments.extend(f"{prefix}{comment}" for comment in outcome.comments)

            rubric = rubrics[outcome.rubric]
            grades[outcome.rubric] = self.exercise_grade(outcome.total, rubric.denominator, penalty)

        if penalty:
            comments.append(f"Penalty of {penalty:g} points: submission found in '{path_used}'")

        evaluation = BranchEvaluation(
            branch=branch,
            files=tuple(files),
            scores=scores,
            comments=tuple(comments),
            grades=grades,
            grade=self.final_grade(list(grades.values())),
            path_used=path_used,
            penalty=penalty
        )
        logger.info(f"{branch}: total {evaluation.total:.2f}, grade {evaluation.grade}")
        return evaluation

    def empty(self, branch: str, plan: GradingPlan, comment: str,
              error: Optional[str] = None) -> BranchEvaluation:
        """Evaluation of a branch with nothing to grade: every criterion at zero."""
        qualify = len(plan.exercises) > 1
        scores = {
            f"{rubric.name}.{criterion.identifier}" if qualify else criterion.identifier: 0.0
            for rubric in plan.exercises
            for criterion in rubric.criteria
        }
        return BranchEvaluation(branch=branch, scores=scores, comments=(comment,), error=error)
