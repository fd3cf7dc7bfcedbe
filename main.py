#!/usr/bin/env python3
"""
Repo Grader - Main Entry Point
==============================
Grades student submission branches of a GitHub repository.

Commands:
- evaluate:       grade every submission branch with a plan and write a JSON report
- list-files:     list the files of a subfolder on every submission branch
- branches:       list submission branches
- commits:        list the commits of every submission branch
- repos:          list visible repositories, optionally checking a commit deadline
- import-grades:  join two JSON reports with the roster into a grade-import CSV
- plans:          list the built-in grading plans

Author: Repo Grader Team
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from repo_grader.activity import branch_commits, repos_with_deadline
from repo_grader.core.config import GraderConfig, ConfigurationError, DEFAULT_ENV_FILES
from repo_grader.github.fetcher import GitHubContentsProvider
from repo_grader.pipeline import GradingOrchestrator
from repo_grader.reports.generator import (
    IMPORT_VALUES,
    ReportGenerator,
    build_grade_import_rows,
    format_summary,
    load_json_report,
)
from repo_grader.roster.matcher import get_matcher, load_roster
from repo_grader.scoring.plans import BUILTIN_PLANS, PlanError, list_plans, load_plan

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Commands that need a configured repository
REPOSITORY_COMMANDS = {'evaluate', 'list-files', 'branches', 'commits'}
# Commands that only need a token
TOKEN_COMMANDS = {'repos'}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Grade student submission branches of a GitHub repository'
    )
    parser.add_argument('--config', help='YAML configuration file')
    parser.add_argument(
        '--env-file',
        action='append',
        dest='env_files',
        help='dotenv file to load (repeatable; later files override earlier ones). '
             f"Defaults to {', '.join(DEFAULT_ENV_FILES)}"
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    evaluate = subparsers.add_parser('evaluate', help='Grade every submission branch')
    evaluate.add_argument('--plan', required=True, help='Built-in plan name or YAML plan file')
    evaluate.add_argument('--prefix', help='Branch name prefix (overrides plan and config)')
    evaluate.add_argument('--output', help='Output JSON file (default: <plan>_evaluation_results.json)')

    list_files = subparsers.add_parser('list-files', help='List a subfolder on every submission branch')
    list_files.add_argument('subfolder', help='Repository-relative folder to list')
    list_files.add_argument('--prefix', help='Branch name prefix')

    branches = subparsers.add_parser('branches', help='List submission branches')
    branches.add_argument('--prefix', help='Branch name prefix')

    commits = subparsers.add_parser('commits', help='List the commits of every submission branch')
    commits.add_argument('--prefix', help='Branch name prefix')
    commits.add_argument('--output', help='Output JSON file (default: print)')

    repos = subparsers.add_parser('repos', help='List repositories visible to the token')
    repos.add_argument('--affiliation', help='owner, collaborator or organization_member')
    repos.add_argument('--deadline-hour', type=int, help='Flag last commits after this local hour')
    repos.add_argument('--timezone', default='Europe/Madrid', help='Timezone of the deadline')

    grades = subparsers.add_parser('import-grades', help='Build the grade-import CSV')
    grades.add_argument('--roster', required=True, help='Roster JSON file')
    grades.add_argument('--first', required=True, help='JSON report of exercise 1')
    grades.add_argument('--second', help='JSON report of exercise 2')
    grades.add_argument('--output', default='grade_import.csv', help='Output CSV file')
    grades.add_argument('--matcher', default='tokens', help='Branch-to-student matching strategy')
    grades.add_argument('--prefix', help='Branch name prefix stripped before matching')
    grades.add_argument('--value', choices=IMPORT_VALUES, default='grade',
                        help='Grade column contents: the 0-10 grade (raw total when a record has none) '
                             'or always the raw weighted total')

    subparsers.add_parser('plans', help='List the built-in grading plans')

    return parser


def load_config(args: argparse.Namespace) -> GraderConfig:
    """Load and validate configuration for the selected command."""
    base = GraderConfig.from_file(args.config) if args.config else None
    config = GraderConfig.from_environment(args.env_files, base=base)

    if args.command in REPOSITORY_COMMANDS:
        config.validate(require_repository=True)
    elif args.command in TOKEN_COMMANDS:
        config.validate(require_repository=False)

    logger.debug(f"Configuration: {config.to_dict()}")
    return config


async def run(args: argparse.Namespace, config: GraderConfig) -> int:
    """Execute a command; returns the process exit code."""
    if args.command == 'plans':
        for name in list_plans():
            print(f"{name:<24} {BUILTIN_PLANS[name].get('description', '')}")
        return 0

    if args.command == 'import-grades':
        prefix = args.prefix or config.branch_prefix
        roster = load_roster(args.roster)
        first = load_json_report(args.first)
        second = load_json_report(args.second) if args.second else []
        rows = build_grade_import_rows(roster, first, second, get_matcher(args.matcher, prefix),
                                       value=args.value)
        ReportGenerator(config.output_dir).write_grade_import_csv(rows, args.output)
        return 0

    async with GitHubContentsProvider(config) as provider:
        if args.command == 'evaluate':
            plan = load_plan(args.plan)
            orchestrator = GradingOrchestrator(config, provider, plan)
            results = await orchestrator.evaluate_all(args.prefix)

            output = args.output or f"{plan.name}_evaluation_results.json"
            ReportGenerator(config.output_dir).write_json(results, output)
            print(format_summary(results))

        elif args.command == 'list-files':
            for branch in await provider.list_branches(args.prefix or config.branch_prefix):
                print(f"Branch: {branch}")
                for entry in await provider.list_directory(branch, args.subfolder):
                    print(f"  - {entry.name}")

        elif args.command == 'branches':
            for branch in await provider.list_branches(args.prefix or config.branch_prefix):
                print(branch)

        elif args.command == 'commits':
            history = await branch_commits(provider, args.prefix or config.branch_prefix)
            if args.output:
                with open(args.output, 'w', encoding='utf-8') as f:
                    json.dump(history, f, indent=2, ensure_ascii=False)
            else:
                print(json.dumps(history, indent=2, ensure_ascii=False))

        elif args.command == 'repos':
            listing = await repos_with_deadline(
                provider, args.affiliation, args.deadline_hour, args.timezone
            )
            for repo in listing:
                line = f"- {repo['name']}: {repo['url']} (Owner: {repo['owner']})"
                if repo['last_commit']:
                    status = 'on time' if repo['on_time'] else 'AFTER DEADLINE'
                    line += f" - Last commit: {repo['last_commit']} ({status})"
                print(line)
            print(f"\nTotal repositories: {len(listing)}")

        logger.debug(f"Fetcher statistics: {provider.get_stats()}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(args)
        return asyncio.run(run(args, config))
    except ConfigurationError as e:
        logger.error(str(e))
        return 1
    except PlanError as e:
        logger.error(f"Invalid plan: {e}")
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
