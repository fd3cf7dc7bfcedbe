"""
Input Validation Module
========================
Validation and sanitization of the identifiers that end up in GitHub API URLs.

Covers:
- Repository owner and name
- Branch names and prefixes
- Repository-relative content paths
- Raw configuration values coming from .env files

Author: Repo Grader Team
"""

import re
import urllib.parse
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Custom exception for validation failures."""
    pass


# ================================================================================
# CONFIGURATION VALUES
# ================================================================================

def clean_env_value(value: Optional[str]) -> Optional[str]:
    """
    Strip whitespace, double quotes and semicolons from a configuration value.

    Hand-edited .env files frequently end up with values such as
    ``REPO_OWNER="jdoe";``. Empty results are returned as None.
    """
    if value is None:
        return None
    cleaned = re.sub(r'[";]', '', value).strip()
    return cleaned or None


# ================================================================================
# REPOSITORY IDENTIFIERS
# ================================================================================

def validate_repo_slug(owner: str, name: str) -> str:
    """
    Validate a repository owner/name pair.

    Args:
        owner: GitHub user or organization
        name: Repository name

    Returns:
        The "owner/name" slug

    Raises:
        ValidationError: If either part is malformed
    """
    if not owner or not name:
        raise ValidationError("Repository owner and name are required")

    if not re.match(r'^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,38})$', owner):
        raise ValidationError(f"Invalid repository owner: {owner}")

    if not re.match(r'^[\w.-]{1,100}$', name) or name in ('.', '..'):
        raise ValidationError(f"Invalid repository name: {name}")

    return f"{owner}/{name}"


def validate_branch_name(branch: str) -> str:
    """
    Validate a branch name according to the git ref format rules we rely on.

    Raises:
        ValidationError: If the name could not be a valid ref
    """
    if not branch:
        raise ValidationError("Branch name cannot be empty")

    if len(branch) > 255:
        raise ValidationError("Branch name exceeds maximum length")

    if '..' in branch or branch.startswith('/') or branch.endswith('/'):
        raise ValidationError(f"Invalid branch name: {branch}")

    if re.search(r'[\x00-\x20~^:?*\[\\]', branch):
        raise ValidationError(f"Invalid characters in branch name: {branch}")

    return branch


def validate_content_path(path: Optional[str]) -> str:
    """
    Normalize a repository-relative path for the Contents API.

    An empty or None path means the repository root.

    Returns:
        Path without leading/trailing slashes

    Raises:
        ValidationError: If the path attempts traversal or contains null bytes
    """
    if not path:
        return ''

    if '\x00' in path:
        raise ValidationError("Null byte in path")

    if len(path) > 4096:
        raise ValidationError("Path exceeds maximum length")

    normalized = path.strip('/')
    segments = normalized.split('/')
    if any(segment in ('.', '..') for segment in segments):
        raise ValidationError(f"Path traversal attempt detected: {path}")

    if any(not segment for segment in segments):
        logger.debug(f"Collapsing empty segments in path: {path}")
        normalized = '/'.join(segment for segment in segments if segment)

    return normalized


def quote_content_path(path: str) -> str:
    """URL-quote a validated content path, keeping the separators."""
    return urllib.parse.quote(validate_content_path(path), safe='/')
