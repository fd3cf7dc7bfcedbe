"""
Scoring Modules
===============
Declarative rubrics, grading plans and score aggregation.
"""

from .rubric import (
    Criterion,
    CriterionResult,
    CriterionScope,
    Rubric,
    RubricError,
    RubricEvaluator,
    RubricOutcome,
    build_predicate,
)
from .plans import GradingPlan, PlanError, list_plans, load_plan
from .aggregator import BranchEvaluation, ScoreAggregator, count_submissions, rescale

__all__ = [
    'Criterion',
    'CriterionResult',
    'CriterionScope',
    'Rubric',
    'RubricError',
    'RubricEvaluator',
    'RubricOutcome',
    'build_predicate',
    'GradingPlan',
    'PlanError',
    'list_plans',
    'load_plan',
    'BranchEvaluation',
    'ScoreAggregator',
    'count_submissions',
    'rescale',
]
