"""
Tests for score aggregation and grade rescaling.
"""

import pytest

from repo_grader.scoring.aggregator import (
    BranchEvaluation,
    ScoreAggregator,
    count_submissions,
    rescale,
)
from repo_grader.scoring.plans import load_plan
from repo_grader.scoring.rubric import RubricEvaluator


@pytest.fixture
def threads_plan():
    return load_plan('concurrent-threads')


def evaluate_threads(plan, files):
    return [RubricEvaluator(rubric).evaluate('feature/ev1Doe', files) for rubric in plan.exercises]


@pytest.mark.parametrize('raw, expected_max, grade', [
    (20, 40, 5.0),
    (40, 40, 10.0),
    (56, 40, 10.0),
    (-5, 40, 0.0),
    (0, 9.7, 0.0),
    (9.7, 9.7, 10.0),
])
def test_rescale_stays_within_scale(raw, expected_max, grade):
    assert rescale(raw, expected_max) == pytest.approx(grade)


def test_rescale_with_non_positive_maximum():
    assert rescale(5, 0) == 0.0


def test_final_grade_is_mean_of_exercises():
    aggregator = ScoreAggregator()
    assert aggregator.final_grade([10.0, 6.0]) == 8.0
    assert aggregator.final_grade([]) is None


def test_threads_branch_with_one_file(threads_plan):
    files = {'project/TraditionalThreads.java': None}
    outcomes = evaluate_threads(threads_plan, files)

    evaluation = ScoreAggregator().aggregate(
        'feature/ev1Doe', threads_plan, outcomes, files=list(files), path_used='project'
    )

    # 56/40 clamps to 10, 24/40 gives 6
    assert evaluation.grades == {'traditional': 10.0, 'virtual': 6.0}
    assert evaluation.grade == 8.0
    assert evaluation.total == 80.0
    assert 'traditional.executorService' in evaluation.scores
    assert evaluation.comments[0].startswith('[traditional] ')


def test_penalty_lowers_exercise_grades():
    plan = load_plan('concurrent-structure')
    files = {'src/TraditionalThreads.java': None, 'src/VirtualThreads.java': None, 'src/README.md': None}
    outcomes = [RubricEvaluator(rubric).evaluate('feature/ev1Doe', files) for rubric in plan.exercises]

    evaluation = ScoreAggregator().aggregate(
        'feature/ev1Doe', plan, outcomes, files=list(files),
        path_used='src', penalty=plan.penalty_for('src')
    )

    assert evaluation.penalty == 5.0
    assert evaluation.total == 26.0
    # (26 - 5) / 26
    assert evaluation.grades == {'structure': 8.1}
    assert evaluation.comments[-1] == "Penalty of 5 points: submission found in 'src'"


def test_total_is_sum_of_scores_and_bounded_by_weights():
    plan = load_plan('async-js')
    files = {
        'src/app.js': "// client\nasync function load() { try { await axios.get('/u') } catch (e) {} }",
        'README.md': 'Requests are made with Axios.'
    }
    outcomes = [RubricEvaluator(rubric).evaluate('feature/ev1Doe', files) for rubric in plan.exercises]

    evaluation = ScoreAggregator().aggregate('feature/ev1Doe', plan, outcomes, files=list(files))

    assert evaluation.total == sum(evaluation.scores.values())
    assert evaluation.total == pytest.approx(plan.exercises[0].max_score)
    assert evaluation.grade == 10.0
    assert 'asyncAwait' in evaluation.scores


def test_empty_evaluation_zeroes_every_criterion(threads_plan):
    evaluation = ScoreAggregator().empty('feature/ev1Doe', threads_plan, 'Nothing found')

    assert len(evaluation.scores) == 16
    assert evaluation.total == 0
    assert evaluation.grade is None
    assert evaluation.comments == ('Nothing found',)
    assert not evaluation.has_files


def test_count_submissions():
    evaluations = [
        BranchEvaluation(branch='a', files=('x.js',)),
        BranchEvaluation(branch='b'),
        BranchEvaluation(branch='c', files=('y.js', 'z.js')),
    ]
    assert count_submissions(evaluations) == 2


def test_to_dict_round_values():
    evaluation = BranchEvaluation(branch='a', files=('x',), scores={'k': 1.23456}, grade=7.5)
    data = evaluation.to_dict()
    assert data['scores'] == {'k': 1.23}
    assert data['total'] == 1.23
    assert data['files'] == ['x']
    assert data['error'] is None
