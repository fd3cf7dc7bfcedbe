"""
GitHub Contents Fetcher
=======================
Reads branches, directory listings and file contents from the GitHub REST API.

Provides:
- Rate-limited, sequential requests over a single aiohttp session
- Bounded retries with exponential backoff for transient failures
- Optional on-disk response caching (diskcache)
- Fail-soft public methods: failures are logged and replaced by empty results

Author: Repo Grader Team
"""

import asyncio
import base64
import binascii
import hashlib
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, List
import logging

import aiohttp
import diskcache

from ..core.config import GraderConfig
from ..core.validators import ValidationError, quote_content_path, validate_branch_name

logger = logging.getLogger(__name__)

# Statuses worth another attempt; everything else non-2xx is final
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
PAGE_SIZE = 100


class GitHubFetchError(Exception):
    """GitHub fetch exception."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class EntryKind(Enum):
    """Kinds of entries returned by the Contents API."""
    FILE = "file"
    DIRECTORY = "dir"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"


@dataclass(frozen=True)
class RepositoryEntry:
    """A single directory entry of a branch."""
    name: str
    path: str
    kind: EntryKind = EntryKind.FILE

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> 'RepositoryEntry':
        try:
            kind = EntryKind(item.get('type', 'file'))
        except ValueError:
            kind = EntryKind.FILE
        return cls(name=item['name'], path=item['path'], kind=kind)


class SourceProvider(ABC):
    """Read-only view of a repository's branches and files."""

    @abstractmethod
    async def list_branches(self, prefix: Optional[str] = None) -> List[str]:
        """List branch names starting with prefix; empty on any failure."""

    @abstractmethod
    async def list_directory(self, branch: str, path: str = '') -> List[RepositoryEntry]:
        """List the entries of a directory; empty on any failure."""

    @abstractmethod
    async def read_file(self, branch: str, path: str) -> Optional[str]:
        """Return a file's decoded text, or None on any failure."""


class RateLimiter:
    """Sliding-window rate limiter for API calls."""

    def __init__(self, max_calls: int = 4500, period: int = 3600):
        """
        Initialize rate limiter.

        Args:
            max_calls: Maximum calls allowed
            period: Period in seconds
        """
        self.max_calls = max_calls
        self.period = period
        self.calls: List[float] = []

    async def acquire(self) -> None:
        """Acquire rate limit slot."""
        now = time.monotonic()
        cutoff = now - self.period

        # Remove old calls
        self.calls = [call_time for call_time in self.calls if call_time > cutoff]

        if len(self.calls) >= self.max_calls:
            wait_time = min(self.calls) + self.period - now
            if wait_time > 0:
                logger.info(f"Rate limit reached, waiting {wait_time:.1f} seconds")
                await asyncio.sleep(wait_time)

        self.calls.append(time.monotonic())


class ResponseCache:
    """
    Disk cache for decoded API responses.

    Entries expire after ``ttl`` seconds; only successful responses are stored.
    """

    def __init__(self, cache_dir: str, ttl: int = 3600, size_limit_mb: int = 100):
        self.ttl = ttl
        self.cache = diskcache.Cache(cache_dir, size_limit=size_limit_mb * 1024 * 1024)

    @staticmethod
    def make_key(url: str, params: Optional[Dict[str, Any]] = None) -> str:
        payload = json.dumps([url, sorted((params or {}).items())], default=str)
        return hashlib.md5(payload.encode()).hexdigest()

    def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.cache.get(self.make_key(url, params))

    def set(self, url: str, params: Optional[Dict[str, Any]], value: Any) -> None:
        self.cache.set(self.make_key(url, params), value, expire=self.ttl)

    def clear(self) -> None:
        self.cache.clear()
        logger.info("Cleared response cache")

    def close(self) -> None:
        self.cache.close()


class GitHubContentsProvider(SourceProvider):
    """
    Source provider backed by the GitHub REST API.

    Use as an async context manager so the underlying session is closed:

        async with GitHubContentsProvider(config) as provider:
            entries = await provider.list_directory('feature/ev1Doe', 'src')
    """

    def __init__(self, config: GraderConfig,
                 session: Optional[aiohttp.ClientSession] = None,
                 cache: Optional[ResponseCache] = None):
        """
        Initialize the provider.

        Args:
            config: Validated grader configuration
            session: Optional pre-built session (closed by its owner, not by us)
            cache: Optional response cache; built from config.cache_dir when omitted
        """
        self.config = config
        self.base_url = config.api_url.rstrip('/')
        self._session = session
        self._owns_session = session is None

        if cache is None and config.cache_dir:
            cache = ResponseCache(config.cache_dir, ttl=config.cache_ttl)
        self.cache = cache

        self.rate_limiter = RateLimiter(max_calls=config.rate_limit_per_hour)

        # Statistics
        self.stats = {
            'requests': 0,
            'retries': 0,
            'failed': 0,
            'cache_hits': 0
        }

    async def __aenter__(self) -> 'GitHubContentsProvider':
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        if self.cache is not None:
            self.cache.close()

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/vnd.github+json',
            'User-Agent': self.config.user_agent,
        }
        if self.config.github_token:
            headers['Authorization'] = f"token {self.config.github_token}"
        return headers

    @property
    def repo_url(self) -> str:
        return f"{self.base_url}/repos/{self.config.repo_owner}/{self.config.repo_name}"

    # ============================================================================
    # TRANSPORT
    # ============================================================================

    async def _request_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a URL and decode its JSON body, retrying transient failures.

        Raises:
            GitHubFetchError: On a final non-success status or exhausted retries
        """
        if self._session is None:
            raise GitHubFetchError("Provider used outside of its async context")

        if self.cache is not None:
            cached = self.cache.get(url, params)
            if cached is not None:
                self.stats['cache_hits'] += 1
                logger.debug(f"Cache hit for {url}")
                return cached

        last_error = "no attempt made"
        for attempt in range(1, self.config.max_retries + 1):
            await self.rate_limiter.acquire()
            self.stats['requests'] += 1

            try:
                async with self._session.get(url, params=params, headers=self._headers()) as response:
                    if 200 <= response.status < 300:
                        data = await response.json(content_type=None)
                        if self.cache is not None:
                            self.cache.set(url, params, data)
                        return data

                    last_error = f"HTTP {response.status} {response.reason or ''}".strip()
                    if not self._should_retry(response.status, response.headers):
                        raise GitHubFetchError(f"{last_error} for {url}", status=response.status)

                    delay = self._retry_delay(attempt, response.headers.get('Retry-After'))

            except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
                last_error = f"{type(e).__name__}: {e}"
                delay = self._retry_delay(attempt)

            if attempt < self.config.max_retries:
                self.stats['retries'] += 1
                logger.warning(
                    f"Request to {url} failed ({last_error}); retry {attempt}/{self.config.max_retries - 1} "
                    f"in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise GitHubFetchError(f"Giving up on {url} after {self.config.max_retries} attempts: {last_error}")

    @staticmethod
    def _should_retry(status: int, headers: Any) -> bool:
        if status in RETRYABLE_STATUSES:
            return True
        # Primary rate limit exhausted
        return status == 403 and headers.get('X-RateLimit-Remaining') == '0'

    def _retry_delay(self, attempt: int, retry_after: Optional[str] = None) -> float:
        if retry_after and str(retry_after).isdigit():
            return float(retry_after)
        return self.config.backoff_base * (2 ** (attempt - 1))

    async def _paginate(self, url: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Collect every page of a list endpoint (stops at the first short page)."""
        items: List[Any] = []
        page = 1
        while True:
            page_params = {**(params or {}), 'per_page': PAGE_SIZE, 'page': page}
            data = await self._request_json(url, page_params)
            if not isinstance(data, list):
                raise GitHubFetchError(f"Expected a list from {url}, got {type(data).__name__}")
            items.extend(data)
            if len(data) < PAGE_SIZE:
                return items
            page += 1

    # ============================================================================
    # PUBLIC API (fail-soft)
    # ============================================================================

    async def list_branches(self, prefix: Optional[str] = None) -> List[str]:
        """
        List branch names, optionally keeping only those starting with prefix.

        Returns:
            Branch names in API order; empty list on failure
        """
        try:
            branches = await self._paginate(f"{self.repo_url}/branches")
        except GitHubFetchError as e:
            self.stats['failed'] += 1
            logger.error(f"Failed to list branches of {self.config.repository}: {e}")
            return []

        names = [branch['name'] for branch in branches if 'name' in branch]
        logger.info(f"Found {len(names)} branches in {self.config.repository}")
        if prefix:
            names = [name for name in names if name.startswith(prefix)]
            logger.info(f"{len(names)} branches match prefix '{prefix}'")
        return names

    async def list_directory(self, branch: str, path: str = '') -> List[RepositoryEntry]:
        """
        List the entries of a directory on a branch.

        Args:
            branch: Branch name
            path: Repository-relative directory ('' for the root)

        Returns:
            Entries in API order; empty list on any failure
        """
        try:
            url = f"{self.repo_url}/contents/{quote_content_path(path)}".rstrip('/')
            data = await self._request_json(url, {'ref': validate_branch_name(branch)})
        except (GitHubFetchError, ValidationError) as e:
            self.stats['failed'] += 1
            logger.warning(f"Could not list '{path}' on branch {branch}: {e}")
            return []

        if isinstance(data, dict):
            # The path points at a single file
            logger.debug(f"'{path}' on branch {branch} is a file, not a directory")
            data = [data]

        if not isinstance(data, list):
            logger.warning(f"Unexpected listing payload for '{path}' on branch {branch}")
            return []

        entries = []
        for item in data:
            try:
                entries.append(RepositoryEntry.from_api(item))
            except (KeyError, TypeError):
                logger.warning(f"Skipping malformed entry in '{path}' on branch {branch}: {item!r}")
        return entries

    async def read_file(self, branch: str, path: str) -> Optional[str]:
        """
        Fetch and decode a file's text.

        Returns:
            UTF-8 text, or None when the file is missing, too large to be
            inlined by the API, or not valid UTF-8
        """
        try:
            url = f"{self.repo_url}/contents/{quote_content_path(path)}"
            data = await self._request_json(url, {'ref': validate_branch_name(branch)})
        except (GitHubFetchError, ValidationError) as e:
            self.stats['failed'] += 1
            logger.warning(f"Could not fetch '{path}' on branch {branch}: {e}")
            return None

        if not isinstance(data, dict) or data.get('type', 'file') != 'file':
            logger.warning(f"'{path}' on branch {branch} is not a file")
            return None

        content = data.get('content')
        if not content:
            if data.get('size') == 0:
                return ''
            logger.warning(f"File '{path}' on branch {branch} has no readable content")
            return None

        try:
            return base64.b64decode(content).decode('utf-8')
        except (binascii.Error, ValueError) as e:
            # UnicodeDecodeError is a ValueError
            logger.warning(f"File '{path}' on branch {branch} could not be decoded: {e}")
            return None

    async def list_commits(self, branch: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        List commits of a branch, newest first.

        Args:
            branch: Branch name
            limit: Return at most this many commits (fetches a single page)
        """
        url = f"{self.repo_url}/commits"
        try:
            params = {'sha': validate_branch_name(branch)}
            if limit:
                params['per_page'] = min(limit, PAGE_SIZE)
                commits = await self._request_json(url, params)
                if not isinstance(commits, list):
                    raise GitHubFetchError(f"Expected a list from {url}, got {type(commits).__name__}")
                return commits[:limit]
            return await self._paginate(url, params)
        except (GitHubFetchError, ValidationError) as e:
            self.stats['failed'] += 1
            logger.error(f"Failed to list commits of {branch}: {e}")
            return []

    async def list_user_repos(self, affiliation: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List repositories visible to the authenticated user.

        Args:
            affiliation: GitHub affiliation filter (owner, collaborator,
                organization_member); all repositories when omitted
        """
        params = {'affiliation': affiliation} if affiliation else {'type': 'all'}
        try:
            return await self._paginate(f"{self.base_url}/user/repos", params)
        except GitHubFetchError as e:
            self.stats['failed'] += 1
            logger.error(f"Failed to list repositories: {e}")
            return []

    async def last_commit_date(self, owner: str, repo: str, branch: str) -> Optional[str]:
        """ISO date of the newest commit on a branch of any repository, or None."""
        url = f"{self.base_url}/repos/{owner}/{repo}/commits"
        try:
            commits = await self._request_json(url, {'sha': branch, 'per_page': 1})
        except GitHubFetchError as e:
            self.stats['failed'] += 1
            logger.error(f"Failed to get the last commit of {owner}/{repo}: {e}")
            return None

        try:
            return commits[0]['commit']['committer']['date']
        except (IndexError, KeyError, TypeError):
            logger.warning(f"No commit date available for {owner}/{repo}")
            return None

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
