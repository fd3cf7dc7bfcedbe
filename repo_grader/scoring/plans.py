"""
Grading Plans
=============
A plan tells the grader where to look for a submission inside each branch
and which rubric (one per exercise) to apply to what it finds.

Plans are plain data. The built-in plans below go through the same loader
as YAML plan files, e.g.:

    name: async-js
    branch_prefix: feature/ev1
    search_paths: [src]
    extra_files: [README.md]
    exercises:
      - name: async-js
        criteria:
          - id: async_await
            description: Correct use of async/await
            weight: 2
            predicate: {contains_all: [async, await]}
            feedback: The code uses async/await.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

import yaml

from .rubric import Rubric, RubricError
from ..core.validators import ValidationError, validate_content_path

logger = logging.getLogger(__name__)


class PlanError(RubricError):
    """Raised when a plan cannot be found or is malformed."""
    pass


@dataclass(frozen=True)
class GradingPlan:
    """Where to find a submission and how to grade it."""
    name: str
    exercises: Tuple[Rubric, ...]
    description: str = ''
    branch_prefix: Optional[str] = None
    search_paths: Tuple[str, ...] = ('',)
    penalty_paths: Dict[str, float] = field(default_factory=dict)
    recursive: bool = True
    extra_files: Tuple[str, ...] = ()

    @property
    def candidate_paths(self) -> Tuple[str, ...]:
        """Search paths followed by penalized paths, in lookup order."""
        extra = tuple(path for path in self.penalty_paths if path not in self.search_paths)
        return self.search_paths + extra

    def penalty_for(self, path: Optional[str]) -> float:
        if path is None:
            return 0.0
        return float(self.penalty_paths.get(path, 0.0))

    def needs_content(self, file_name: str) -> bool:
        return any(rubric.needs_content(file_name) for rubric in self.exercises)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'GradingPlan':
        if not isinstance(data, Mapping):
            raise PlanError(f"Plan must be a mapping, got {type(data).__name__}")

        name = data.get('name')
        if not name:
            raise PlanError("Plan needs a name")

        exercises = data.get('exercises')
        if not exercises:
            raise PlanError(f"Plan '{name}' has no exercises")

        try:
            rubrics = tuple(Rubric.from_dict(exercise) for exercise in exercises)
            search_paths = tuple(validate_content_path(path) for path in data.get('search_paths', ['']))
            penalty_paths = {
                validate_content_path(path): float(points)
                for path, points in (data.get('penalty_paths') or {}).items()
            }
            extra_files = tuple(validate_content_path(path) for path in data.get('extra_files', []))
        except (RubricError, ValidationError, TypeError, ValueError) as e:
            raise PlanError(f"Invalid plan '{name}': {e}")

        names = [rubric.name for rubric in rubrics]
        if len(set(names)) != len(names):
            raise PlanError(f"Plan '{name}' has exercises with duplicate names")

        return cls(
            name=name,
            exercises=rubrics,
            description=data.get('description', ''),
            branch_prefix=data.get('branch_prefix'),
            search_paths=search_paths or ('',),
            penalty_paths=penalty_paths,
            recursive=bool(data.get('recursive', True)),
            extra_files=extra_files,
        )


# ================================================================================
# BUILT-IN PLANS
# ================================================================================

_THREADS_PROJECT = 'src/com/mymodule/serviceprocessprogramming/ut1_concurrent_programming/project'
_FACTORY_PROJECT = 'src/com/mymodule/serviceprocessprogramming/ut2_multiprocess_programming/project'

# id, description, what is expected when missing
_THREAD_CRITERIA = [
    ('executorService', 'Correct ExecutorService configuration',
     'An ExecutorService with a thread pool is expected, with tasks sent through submit().'),
    ('customTasks', 'Correct implementation of the custom tasks',
     'Each task must run a custom calculation with suitable waiting times.'),
    ('threadTypes', 'Use of traditional and virtual threads',
     'Traditional and virtual thread versions must live in separate classes.'),
    ('consoleOutput', 'Complete and clear console output',
     'Console output must show the thread id, the calculation performed and the execution time.'),
    ('comparisonAnalysis', 'Comparison chart and analysis',
     'The chart must show the response time of both versions, with a written analysis.'),
    ('documentation', 'Clear documentation in README.md',
     'README.md must include the comparison chart, console captures and the analysis.'),
    ('codeStructure', 'Code structure and organization',
     'Code must be organized in well named classes with clear comments.'),
    ('gitUsage', 'Organized delivery on GitHub',
     'The project must be on a correctly named branch, with code and docs in the expected places.'),
]


def _thread_exercise(name: str, file_name: str) -> Dict[str, Any]:
    """Presence-based rubric: 70% of each criterion when the file exists, 30% otherwise."""
    present = {'regex': f'^{re.escape(file_name)}$'}
    return {
        'name': name,
        'expected_max': 40,
        'criteria': [
            {
                'id': identifier,
                'description': description,
                'weight': 10,
                'scope': 'listing',
                'predicate': {'tiers': [{'when': present, 'score': 7}], 'default': 3},
                'feedback_levels': [
                    {'min_score': 7, 'feedback': f"Partially meets: {description}."},
                    {'min_score': 0, 'feedback': f"Missing: {description}. {expected}"},
                ],
            }
            for identifier, description, expected in _THREAD_CRITERIA
        ],
    }


BUILTIN_PLANS: Dict[str, Dict[str, Any]] = {
    'concurrent-threads': {
        'name': 'concurrent-threads',
        'description': 'Traditional vs virtual threads project, graded per exercise file',
        'branch_prefix': 'feature/ev1',
        'recursive': False,
        'search_paths': [
            _THREADS_PROJECT,
            'com/mymodule/serviceprocessprogramming/ut1_concurrent_programming/project',
        ],
        'exercises': [
            _thread_exercise('traditional', 'TraditionalThreads.java'),
            _thread_exercise('virtual', 'VirtualThreads.java'),
        ],
    },
    'concurrent-structure': {
        'name': 'concurrent-structure',
        'description': 'Delivery structure check for the threads project',
        'branch_prefix': 'feature/ev1',
        'recursive': False,
        'search_paths': [
            _THREADS_PROJECT,
            'com/mymodule/serviceprocessprogramming/ut1_concurrent_programming/project',
        ],
        'penalty_paths': {
            'src/main/java': 5,
            'src': 5,
            'src/com/mymodule/serviceprocessprogramming/f1_concurrent_programming/project': 5,
            'src/com/mymodule/serviceprocessprogramming/project': 5,
        },
        'exercises': [{
            'name': 'structure',
            'criteria': [
                {
                    'id': 'structure',
                    'description': 'Expected files delivered',
                    'weight': 6,
                    'scope': 'listing',
                    'predicate': {'count': {
                        'pattern': r'^(TraditionalThreads\.java|VirtualThreads\.java|README\.md)$',
                        'per_match': 2,
                        'cap': 6,
                    }},
                    'feedback': 'Expected files found in the project folder.',
                },
                {
                    'id': 'documentation',
                    'description': 'README.md present',
                    'weight': 10,
                    'scope': 'listing',
                    'predicate': {'regex': r'^README\.md$'},
                    'feedback': 'README.md is present.',
                },
                {
                    'id': 'gitUsage',
                    'description': 'Branch follows the naming convention',
                    'weight': 10,
                    'scope': 'branch',
                    'predicate': {'regex': r'^feature/ev1'},
                    'feedback': 'Branch is correctly named.',
                },
            ],
        }],
    },
    'factory-orders': {
        'name': 'factory-orders',
        'description': 'Order manager launching processes with ProcessBuilder',
        'branch_prefix': 'feature/ev1',
        'recursive': False,
        'search_paths': [f"{_FACTORY_PROJECT}/ex1", f"{_FACTORY_PROJECT}/ex2"],
        'exercises': [{
            'name': 'factory-orders',
            'expected_max': 9.7,
            'criteria': [
                {
                    'id': 'readOrders',
                    'description': 'Orders file pedidos.txt is read',
                    'weight': 2,
                    'scope': 'listing',
                    'predicate': {'regex': r'^pedidos\.txt$'},
                    'feedback': 'pedidos.txt was found and appears to be read correctly.',
                },
                {
                    'id': 'processBuilder',
                    'description': 'Use of ProcessBuilder',
                    'weight': 2,
                    'files': '*.java',
                    'predicate': {'contains_all': ['ProcessBuilder']},
                    'feedback': 'ProcessBuilder is used.',
                },
                {
                    'id': 'ioStreams',
                    'description': 'I/O streams between processes',
                    'weight': 2,
                    'files': '*.java',
                    'predicate': {'all_of': [
                        {'regex': r'(BufferedReader|InputStreamReader)\s*\(.*?\)'},
                        {'regex': r'(BufferedWriter|OutputStreamWriter)\s*\(.*?\)'},
                    ]},
                    'feedback': 'Input and output streams are correctly implemented.',
                },
                {
                    'id': 'logs',
                    'description': 'Order log files generated',
                    'weight': 2,
                    'scope': 'listing',
                    'predicate': {'count': {'pattern': r'^log_pedido_', 'per_match': 0.5, 'cap': 2}},
                    'feedback': 'Order log files were generated.',
                },
                {
                    'id': 'organization',
                    'description': 'Project documented in README.md',
                    'weight': 1.7,
                    'scope': 'listing',
                    'predicate': {'regex': r'^README\.md$'},
                    'feedback': 'README.md is present and documents the project.',
                },
            ],
        }],
    },
    'async-js': {
        'name': 'async-js',
        'description': 'Asynchronous JavaScript programming with Axios',
        'branch_prefix': 'feature/ev1',
        'search_paths': ['src'],
        'extra_files': ['README.md'],
        'exercises': [{
            'name': 'async-js',
            # README mention is a bonus above the code criteria
            'expected_max': 6.8,
            'criteria': [
                {
                    'id': 'asyncAwait',
                    'description': 'Correct use of async/await',
                    'weight': 2,
                    'files': '*.js',
                    'predicate': {'contains_all': ['async', 'await']},
                    'feedback': 'The code uses async/await correctly.',
                },
                {
                    'id': 'tryCatch',
                    'description': 'Error handling with try/catch',
                    'weight': 1.5,
                    'files': '*.js',
                    'predicate': {'contains_all': ['try', 'catch']},
                    'feedback': 'Errors are handled with try/catch.',
                },
                {
                    'id': 'axios',
                    'description': 'Use of Axios',
                    'weight': 2,
                    'files': '*.js',
                    'predicate': {'contains_all': ['axios']},
                    'feedback': 'Axios is used for HTTP requests.',
                },
                {
                    'id': 'comments',
                    'description': 'Code organization and comments',
                    'weight': 1.3,
                    'files': '*.js',
                    'predicate': {'contains_any': ['//', '/*']},
                    'feedback': 'The code is organized and commented.',
                },
                {
                    'id': 'documentation',
                    'description': 'README.md documents the use of Axios',
                    'weight': 1,
                    'files': 'README.md',
                    'predicate': {'contains_any': {'terms': ['axios'], 'ignore_case': True}},
                    'feedback': 'Documentation mentions Axios.',
                },
            ],
        }],
    },
}


def list_plans() -> List[str]:
    return sorted(BUILTIN_PLANS)


def load_plan(name_or_path: str) -> GradingPlan:
    """
    Load a built-in plan by name or a plan from a YAML file.

    Raises:
        PlanError: If the plan does not exist or is invalid
    """
    if name_or_path in BUILTIN_PLANS:
        return GradingPlan.from_dict(BUILTIN_PLANS[name_or_path])

    plan_path = Path(name_or_path)
    if not plan_path.is_file():
        raise PlanError(
            f"Unknown plan '{name_or_path}'. Built-in plans: {', '.join(list_plans())}"
        )

    try:
        with open(plan_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PlanError(f"Could not parse plan file {plan_path}: {e}")

    plan = GradingPlan.from_dict(data)
    logger.info(f"Loaded plan '{plan.name}' from {plan_path}")
    return plan
