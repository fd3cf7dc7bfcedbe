"""
Tests for commit summaries and delivery deadline checks.
"""

import asyncio

import pytest

from repo_grader.activity import (
    branch_commits,
    check_deadline,
    parse_github_date,
    repos_with_deadline,
    summarize_commit,
)


@pytest.mark.parametrize('commit_date, on_time', [
    # CEST (UTC+2)
    ('2024-10-07T07:59:00Z', True),
    ('2024-10-07T08:00:00Z', True),
    ('2024-10-07T08:01:00Z', False),
    # CET (UTC+1)
    ('2024-12-02T08:30:00Z', True),
    ('2024-12-02T09:30:00Z', False),
])
def test_check_deadline_uses_local_time(commit_date, on_time):
    assert check_deadline(commit_date, hour=10) is on_time


def test_check_deadline_other_timezone():
    assert check_deadline('2024-10-07T09:30:00Z', hour=10, timezone='UTC')


def test_parse_github_date_is_aware():
    assert parse_github_date('2024-10-07T08:15:00Z').utcoffset().total_seconds() == 0


def test_summarize_commit():
    commit = {
        'sha': 'abc123',
        'commit': {
            'author': {'name': 'Ana Garcia', 'date': '2024-10-07T08:15:00Z'},
            'message': 'Add virtual threads version\n\nDetails follow'
        }
    }
    assert summarize_commit(commit) == {
        'sha': 'abc123',
        'author': 'Ana Garcia',
        'date': '2024-10-07T08:15:00Z',
        'message': 'Add virtual threads version'
    }


class StubActivityProvider:
    def __init__(self):
        self.last_commit_calls = []

    async def list_branches(self, prefix=None):
        return ['feature/ev1Doe']

    async def list_commits(self, branch, limit=None):
        return [{'sha': '1', 'commit': {'author': {'name': 'Doe', 'date': 'd'}, 'message': 'init'}}]

    async def list_user_repos(self, affiliation=None):
        return [
            {'name': 'early', 'html_url': 'u1', 'owner': {'login': 'jdoe'}, 'default_branch': 'main'},
            {'name': 'late', 'html_url': 'u2', 'owner': {'login': 'jdoe'}, 'default_branch': 'main'},
        ]

    async def last_commit_date(self, owner, repo, branch):
        self.last_commit_calls.append((owner, repo, branch))
        return '2024-10-07T07:00:00Z' if repo == 'early' else '2024-10-07T11:00:00Z'


def test_branch_commits():
    history = asyncio.run(branch_commits(StubActivityProvider(), 'feature/ev1'))
    assert history == {'feature/ev1Doe': [{'sha': '1', 'author': 'Doe', 'date': 'd', 'message': 'init'}]}


def test_repos_with_deadline():
    provider = StubActivityProvider()
    listing = asyncio.run(repos_with_deadline(provider, hour=10))

    assert [(repo['name'], repo['on_time']) for repo in listing] == [('early', True), ('late', False)]
    assert provider.last_commit_calls[0] == ('jdoe', 'early', 'main')


def test_repos_without_deadline_skip_commit_lookups():
    provider = StubActivityProvider()
    listing = asyncio.run(repos_with_deadline(provider))

    assert [repo['last_commit'] for repo in listing] == [None, None]
    assert provider.last_commit_calls == []
