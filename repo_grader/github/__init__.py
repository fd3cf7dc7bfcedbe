"""
GitHub Access Layer
===================
Source provider over the GitHub REST API and the repository tree walker.
"""

from .fetcher import (
    EntryKind,
    GitHubContentsProvider,
    GitHubFetchError,
    RateLimiter,
    RepositoryEntry,
    ResponseCache,
    SourceProvider,
)
from .tree import TreeWalker

__all__ = [
    'EntryKind',
    'GitHubContentsProvider',
    'GitHubFetchError',
    'RateLimiter',
    'RepositoryEntry',
    'ResponseCache',
    'SourceProvider',
    'TreeWalker',
]
