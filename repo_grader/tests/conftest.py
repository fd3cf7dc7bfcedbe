"""Pytest configuration and fixtures for grader tests."""

import aiohttp
import pytest

from repo_grader.core.config import GraderConfig

GRADER_ENV_VARS = list(GraderConfig.ENV_VARS)


@pytest.fixture
def config() -> GraderConfig:
    return GraderConfig(
        github_token='test-token',
        repo_owner='classroom',
        repo_name='course',
        max_retries=3,
        backoff_base=0.0
    )


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run in an empty directory with every grader variable unset (and restored after)."""
    for name in GRADER_ENV_VARS:
        monkeypatch.setenv(name, '')
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def client_error():
    return aiohttp.ClientConnectionError('connection reset')
