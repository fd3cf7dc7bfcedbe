"""
Repository tree walking over a SourceProvider.
"""

from typing import List
import logging

from .fetcher import RepositoryEntry, SourceProvider

logger = logging.getLogger(__name__)


class TreeWalker:
    """
    Collects the file entries reachable from a starting path.

    Directories are visited depth-first in the order the provider returns
    them. Descent stops below ``max_depth`` directory levels and once
    ``max_entries`` files have been collected.
    """

    def __init__(self, provider: SourceProvider, max_depth: int = 10,
                 max_entries: int = 1000, recursive: bool = True):
        self.provider = provider
        self.max_depth = max_depth
        self.max_entries = max_entries
        self.recursive = recursive

    async def walk(self, branch: str, path: str = '') -> List[RepositoryEntry]:
        """
        Return every file entry under ``path`` on ``branch``.

        A directory whose listing fails contributes no files; its siblings
        are still visited.
        """
        files: List[RepositoryEntry] = []
        await self._descend(branch, path, 0, files)
        return files

    async def _descend(self, branch: str, path: str, depth: int,
                       files: List[RepositoryEntry]) -> bool:
        entries = await self.provider.list_directory(branch, path)

        for entry in entries:
            if len(files) >= self.max_entries:
                logger.warning(
                    f"Entry limit ({self.max_entries}) reached on branch {branch}; "
                    f"remaining entries under '{path}' skipped"
                )
                return False

            if not entry.is_directory:
                files.append(entry)
                continue

            if not self.recursive:
                continue

            if depth >= self.max_depth:
                logger.warning(f"Depth limit ({self.max_depth}) reached at '{entry.path}' on branch {branch}")
                continue

            logger.debug(f"Descending into '{entry.path}' on branch {branch}")
            if await self._descend(branch, entry.path, depth + 1, files) is False:
                return False

        return True
