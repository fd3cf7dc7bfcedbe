"""
Grading Orchestrator
====================
Runs the evaluation pipeline for every submission branch, one branch at a time:

    list branches -> locate submission -> walk tree -> fetch contents
    -> evaluate rubrics -> aggregate scores

Author: Repo Grader Team
"""

from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple
import logging

from .core.config import GraderConfig
from .github.fetcher import RepositoryEntry, SourceProvider
from .github.tree import TreeWalker
from .scoring.aggregator import BranchEvaluation, ScoreAggregator, count_submissions
from .scoring.plans import GradingPlan
from .scoring.rubric import RubricEvaluator

logger = logging.getLogger(__name__)

NO_FILES_COMMENT = (
    "No files were found in the expected locations. "
    "Make sure the delivery instructions were followed."
)


class GradingOrchestrator:
    """
    Coordinates the evaluation of all submission branches against a plan.
    """

    def __init__(self, config: GraderConfig, provider: SourceProvider, plan: GradingPlan,
                 aggregator: Optional[ScoreAggregator] = None):
        """
        Initialize the orchestrator.

        Args:
            config: Grader configuration (tree bounds, default branch prefix)
            provider: Source of branches and files
            plan: Grading plan to apply
            aggregator: Score aggregator (defaults to a 0-10 scale)
        """
        self.config = config
        self.provider = provider
        self.plan = plan
        self.aggregator = aggregator or ScoreAggregator()
        self.walker = TreeWalker(
            provider,
            max_depth=config.max_depth,
            max_entries=config.max_entries,
            recursive=plan.recursive
        )
        self.evaluators = [RubricEvaluator(rubric) for rubric in plan.exercises]

    @property
    def branch_prefix(self) -> str:
        return self.plan.branch_prefix or self.config.branch_prefix

    async def locate_submission(self, branch: str) -> Tuple[Optional[str], List[RepositoryEntry]]:
        """
        Return the first candidate path holding files, with those files.

        Returns:
            (path, files), or (None, []) when every candidate path is empty
        """
        for path in self.plan.candidate_paths:
            files = await self.walker.walk(branch, path)
            if files:
                logger.info(f"{branch}: {len(files)} files found under '{path or '/'}'")
                return path, files
            logger.debug(f"{branch}: nothing found under '{path or '/'}'")
        return None, []

    async def fetch_contents(self, branch: str,
                             entries: List[RepositoryEntry]) -> Dict[str, Optional[str]]:
        """
        Fetch the text of the files some content criterion applies to.

        Files no criterion reads are kept with None so they still count in
        the listing. Extra plan files are added only when they exist.
        """
        contents: Dict[str, Optional[str]] = {}
        for entry in entries:
            if self.plan.needs_content(entry.name):
                logger.debug(f"{branch}: evaluating {entry.path}")
                contents[entry.path] = await self.provider.read_file(branch, entry.path)
            else:
                contents[entry.path] = None

        for path in self.plan.extra_files:
            if path in contents:
                continue
            text = await self.provider.read_file(branch, path)
            if text is not None:
                contents[path] = text
            else:
                logger.info(f"{branch}: {PurePosixPath(path).name} not found")

        return contents

    async def evaluate_branch(self, branch: str) -> BranchEvaluation:
        """
        Evaluate one branch.

        Unexpected failures are recorded on the evaluation instead of
        aborting the run.
        """
        try:
            path_used, entries = await self.locate_submission(branch)
            if not entries:
                logger.warning(f"No files found on branch {branch}")
                return self.aggregator.empty(branch, self.plan, NO_FILES_COMMENT)

            contents = await self.fetch_contents(branch, entries)
            outcomes = [evaluator.evaluate(branch, contents) for evaluator in self.evaluators]

            return self.aggregator.aggregate(
                branch,
                self.plan,
                outcomes,
                files=list(contents),
                path_used=path_used,
                penalty=self.plan.penalty_for(path_used)
            )

        except Exception as e:
            logger.error(f"Failed to evaluate branch {branch}: {e}", exc_info=True)
            return self.aggregator.empty(
                branch, self.plan, f"Evaluation failed for branch {branch}", error=str(e)
            )

    async def evaluate_all(self, prefix: Optional[str] = None) -> List[BranchEvaluation]:
        """
        Evaluate every branch whose name starts with the prefix, sequentially.

        Args:
            prefix: Branch prefix (defaults to the plan's, then the config's)
        """
        prefix = prefix or self.branch_prefix
        branches = await self.provider.list_branches(prefix)

        results = []
        for branch in branches:
            logger.info(f"Evaluating branch: {branch}")
            results.append(await self.evaluate_branch(branch))

        logger.info(
            f"Evaluated {len(results)} branches with plan '{self.plan.name}'; "
            f"{count_submissions(results)} valid submissions found"
        )
        return results
