"""In-memory stand-ins for the GitHub API used across the test suite."""

import base64
import json
from typing import Any, Dict, List, Optional

from repo_grader.github.fetcher import EntryKind, RepositoryEntry, SourceProvider


def file_entry(path: str) -> RepositoryEntry:
    return RepositoryEntry(name=path.rsplit('/', 1)[-1], path=path, kind=EntryKind.FILE)


def dir_entry(path: str) -> RepositoryEntry:
    return RepositoryEntry(name=path.rsplit('/', 1)[-1], path=path, kind=EntryKind.DIRECTORY)


class FakeProvider(SourceProvider):
    """
    In-memory source provider.

    ``tree`` maps a directory path to its entries, or to None to simulate a
    failing listing. ``files`` maps a file path to its text.
    """

    def __init__(self, branches: List[str], tree: Dict[str, Optional[List[RepositoryEntry]]],
                 files: Optional[Dict[str, str]] = None,
                 per_branch: Optional[Dict[str, Dict[str, Any]]] = None):
        self.branches = branches
        self.tree = tree
        self.files = files or {}
        self.per_branch = per_branch or {}
        self.listed: List[tuple] = []
        self.read: List[tuple] = []

    def _tree(self, branch):
        return self.per_branch.get(branch, {}).get('tree', self.tree)

    def _files(self, branch):
        return self.per_branch.get(branch, {}).get('files', self.files)

    async def list_branches(self, prefix=None):
        return [branch for branch in self.branches if not prefix or branch.startswith(prefix)]

    async def list_directory(self, branch, path=''):
        self.listed.append((branch, path))
        entries = self._tree(branch).get(path)
        return list(entries) if entries else []

    async def read_file(self, branch, path):
        self.read.append((branch, path))
        return self._files(branch).get(path)


class FakeResponse:
    """Minimal stand-in for aiohttp's response context manager."""

    def __init__(self, status: int = 200, payload: Any = None,
                 headers: Optional[Dict[str, str]] = None, reason: str = 'OK'):
        self.status = status
        self.payload = payload
        self.headers = headers or {}
        self.reason = reason

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if isinstance(self.payload, str):
            return json.loads(self.payload)
        return self.payload


class FakeSession:
    """
    Replays queued responses per URL path suffix.

    Each queued item is a FakeResponse or an exception instance to raise.
    """

    def __init__(self, routes: Dict[str, List[Any]]):
        self.routes = {key: list(value) for key, value in routes.items()}
        self.calls: List[tuple] = []

    def get(self, url, params=None, headers=None):
        self.calls.append((url, dict(params or {})))
        for suffix, queue in self.routes.items():
            if url.endswith(suffix):
                if not queue:
                    raise AssertionError(f"No response left for {url}")
                item = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(item, BaseException):
                    raise item
                return item
        return FakeResponse(404, {'message': 'Not Found'}, reason='Not Found')

    async def close(self):
        pass


def encoded(text: str) -> Dict[str, Any]:
    """Contents API payload for a text file."""
    data = text.encode('utf-8')
    return {'type': 'file', 'size': len(data), 'encoding': 'base64',
            'content': base64.b64encode(data).decode('ascii')}

