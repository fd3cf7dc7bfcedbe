"""
Grader Configuration Module
===========================
Centralized configuration loading and validation.

Settings come from (lowest to highest precedence):
1. Dataclass defaults
2. A YAML configuration file (optional)
3. Process environment, after loading ``.env`` and then ``.env.local``
   (the latter overriding the former)

Author: Repo Grader Team
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional, Sequence
from dataclasses import dataclass, fields
import logging

import yaml
from dotenv import load_dotenv

from .validators import ValidationError, clean_env_value, validate_repo_slug, validate_branch_name

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILES = ('.env', '.env.local')


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass
class GraderConfig:
    """
    Grader configuration container.

    Holds the GitHub credentials and the knobs of the evaluation pipeline.
    """

    # GitHub access
    github_token: Optional[str] = None
    repo_owner: Optional[str] = None
    repo_name: Optional[str] = None
    api_url: str = "https://api.github.com"
    user_agent: str = "repo-grader"

    # Branch selection
    branch_prefix: str = "feature/ev1"

    # Tree walking bounds
    max_depth: int = 10
    max_entries: int = 1000

    # Network behaviour
    max_retries: int = 3
    backoff_base: float = 1.0
    request_timeout: float = 30.0
    rate_limit_per_hour: int = 4500  # Stay under 5000

    # Response cache (disabled when cache_dir is None)
    cache_dir: Optional[str] = None
    cache_ttl: int = 3600

    # Output
    output_dir: str = "."

    # Environment variable name -> (field, converter)
    ENV_VARS = {
        'GITHUB_TOKEN': ('github_token', str),
        'REPO_OWNER': ('repo_owner', str),
        'REPO_NAME': ('repo_name', str),
        'GITHUB_API_URL': ('api_url', str),
        'GRADER_BRANCH_PREFIX': ('branch_prefix', str),
        'GRADER_MAX_DEPTH': ('max_depth', int),
        'GRADER_MAX_ENTRIES': ('max_entries', int),
        'GRADER_MAX_RETRIES': ('max_retries', int),
        'GRADER_BACKOFF_BASE': ('backoff_base', float),
        'GRADER_REQUEST_TIMEOUT': ('request_timeout', float),
        'GRADER_RATE_LIMIT': ('rate_limit_per_hour', int),
        'GRADER_CACHE_DIR': ('cache_dir', str),
        'GRADER_CACHE_TTL': ('cache_ttl', int),
        'GRADER_OUTPUT_DIR': ('output_dir', str),
    }

    @classmethod
    def from_environment(cls, env_files: Optional[Sequence[str]] = None,
                         base: Optional['GraderConfig'] = None) -> 'GraderConfig':
        """
        Load configuration from environment variables.

        Args:
            env_files: dotenv files to load first; later files override earlier ones
            base: Configuration to start from (defaults to dataclass defaults)

        Returns:
            GraderConfig instance with environment-based settings
        """
        load_env_files(env_files if env_files is not None else DEFAULT_ENV_FILES)

        config = base or cls()
        for env_name, (field_name, converter) in cls.ENV_VARS.items():
            raw = clean_env_value(os.getenv(env_name))
            if raw is None:
                continue
            try:
                setattr(config, field_name, converter(raw))
            except ValueError:
                raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}")

        return config

    @classmethod
    def from_file(cls, config_path: str) -> 'GraderConfig':
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            GraderConfig instance
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(sorted(unknown))}")

        converters = {field_name: converter for field_name, converter in cls.ENV_VARS.values()}
        values = {}
        for key, value in data.items():
            if key not in known:
                continue
            converter = converters.get(key)
            if converter is None or value is None:
                values[key] = value
                continue
            try:
                values[key] = converter(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Invalid value for {key} in {config_path}: {value!r}")

        logger.info(f"Loaded configuration from {config_path}")
        return cls(**values)

    def validate(self, require_repository: bool = True) -> bool:
        """
        Validate configuration settings.

        Args:
            require_repository: Whether owner/name must be present

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.github_token:
            raise ConfigurationError(
                "GITHUB_TOKEN is not configured. Make sure .env or .env.local defines it."
            )

        if require_repository:
            try:
                validate_repo_slug(self.repo_owner, self.repo_name)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid repository configuration: {e}")

        if self.branch_prefix:
            try:
                validate_branch_name(self.branch_prefix)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid branch prefix: {e}")

        if self.max_depth < 0:
            raise ConfigurationError("max_depth cannot be negative")

        if self.max_entries < 1:
            raise ConfigurationError("max_entries must be at least 1")

        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")

        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

        if self.rate_limit_per_hour > 5000:
            raise ConfigurationError("GitHub API rate limit cannot exceed 5000 per hour")

        return True

    @property
    def repository(self) -> str:
        """Repository slug (owner/name)."""
        return f"{self.repo_owner}/{self.repo_name}"

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary (for serialization).

        Returns:
            Dictionary representation with the token redacted
        """
        data = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if item.name == 'github_token':
                data[item.name] = '***REDACTED***' if value else None
            else:
                data[item.name] = value
        return data


def load_env_files(paths: Sequence[str]) -> None:
    """
    Load dotenv files in order, each later file overriding the previous ones.

    Missing files are reported and skipped. The first file never overrides
    variables already exported in the process environment.
    """
    for index, path in enumerate(paths):
        env_path = Path(path)
        if not env_path.exists():
            logger.warning(f"Environment file not found: {env_path}")
            continue
        logger.info(f"Loading environment file {env_path}")
        load_dotenv(dotenv_path=env_path, override=index > 0)
