"""
Repository activity helpers: commit listings and delivery deadline checks.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo
import logging

from .github.fetcher import GitHubContentsProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Madrid"


def parse_github_date(value: str) -> datetime:
    """Parse GitHub's ISO timestamps (``2024-10-07T08:15:00Z``)."""
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def check_deadline(commit_date: str, hour: int = 10, timezone: str = DEFAULT_TIMEZONE) -> bool:
    """
    Whether a commit happened at or before ``hour`` o'clock local time on its own day.
    """
    local = parse_github_date(commit_date).astimezone(ZoneInfo(timezone))
    deadline = local.replace(hour=hour, minute=0, second=0, microsecond=0)
    return local <= deadline


def summarize_commit(commit: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Flatten a commit payload to sha, author, date and the message's first line."""
    details = commit.get('commit') or {}
    author = details.get('author') or {}
    message = details.get('message') or ''
    return {
        'sha': commit.get('sha'),
        'author': author.get('name'),
        'date': author.get('date'),
        'message': message.splitlines()[0] if message else ''
    }


async def branch_commits(provider: GitHubContentsProvider, prefix: Optional[str] = None) -> Dict[str, List[Dict[str, Optional[str]]]]:
    """Summarized commits of every branch matching the prefix."""
    history = {}
    for branch in await provider.list_branches(prefix):
        commits = await provider.list_commits(branch)
        history[branch] = [summarize_commit(commit) for commit in commits]
        logger.info(f"{branch}: {len(commits)} commits")
    return history


async def repos_with_deadline(provider: GitHubContentsProvider,
                              affiliation: Optional[str] = None,
                              hour: Optional[int] = None,
                              timezone: str = DEFAULT_TIMEZONE) -> List[Dict[str, Any]]:
    """
    List visible repositories with their last commit date on the default branch.

    When ``hour`` is given each entry also says whether that commit met the
    same-day deadline.
    """
    repos = await provider.list_user_repos(affiliation)
    listing = []

    for repo in repos:
        owner = (repo.get('owner') or {}).get('login')
        entry: Dict[str, Any] = {
            'name': repo.get('name'),
            'url': repo.get('html_url'),
            'owner': owner,
            'last_commit': None,
            'on_time': None
        }

        if hour is not None and owner:
            last_commit = await provider.last_commit_date(owner, repo['name'], repo.get('default_branch', 'main'))
            entry['last_commit'] = last_commit
            if last_commit:
                entry['on_time'] = check_deadline(last_commit, hour, timezone)
                if not entry['on_time']:
                    logger.warning(f"{repo.get('name')}: last commit {last_commit} is after {hour}:00 ({timezone})")

        listing.append(entry)

    logger.info(f"Total repositories: {len(listing)}")
    return listing
