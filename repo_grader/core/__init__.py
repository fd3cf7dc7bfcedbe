"""
Core Configuration Layer
========================
Configuration loading and input validation shared by every grader component.
"""

from .config import GraderConfig, ConfigurationError, load_env_files
from .validators import (
    ValidationError,
    clean_env_value,
    validate_repo_slug,
    validate_branch_name,
    validate_content_path,
)

__all__ = [
    'GraderConfig',
    'ConfigurationError',
    'load_env_files',
    'ValidationError',
    'clean_env_value',
    'validate_repo_slug',
    'validate_branch_name',
    'validate_content_path',
]
