"""
Tests for the GitHub contents provider, run against a fake aiohttp session.
"""

import asyncio
import base64

import pytest

from repo_grader.github.fetcher import (
    EntryKind,
    GitHubContentsProvider,
    GitHubFetchError,
    RateLimiter,
    RepositoryEntry,
    ResponseCache,
)

from .fakes import FakeResponse, FakeSession, encoded

CONTENTS = '/repos/classroom/course/contents'


def run(config, session, action):
    """Open a provider over ``session`` and await ``action(provider)``."""
    async def scenario():
        async with GitHubContentsProvider(config, session=session) as provider:
            return await action(provider), provider.get_stats()
    return asyncio.run(scenario())


class TestListDirectory:
    def test_entries_in_api_order(self, config):
        session = FakeSession({f'{CONTENTS}/src': [FakeResponse(200, [
            {'name': 'app.js', 'path': 'src/app.js', 'type': 'file'},
            {'name': 'lib', 'path': 'src/lib', 'type': 'dir'},
            {'name': 'mod', 'path': 'src/mod', 'type': 'submodule'},
        ])]})

        entries, _ = run(config, session, lambda p: p.list_directory('feature/ev1Doe', 'src'))

        assert [entry.path for entry in entries] == ['src/app.js', 'src/lib', 'src/mod']
        assert entries[1].is_directory
        assert entries[2].kind is EntryKind.SUBMODULE
        assert session.calls[0][1] == {'ref': 'feature/ev1Doe'}

    def test_root_listing_url(self, config):
        session = FakeSession({CONTENTS: [FakeResponse(200, [])]})
        run(config, session, lambda p: p.list_directory('main'))
        assert session.calls[0][0].endswith('/contents')

    def test_not_found_is_empty_without_retry(self, config):
        session = FakeSession({f'{CONTENTS}/missing': [FakeResponse(404, {}, reason='Not Found')]})

        entries, stats = run(config, session, lambda p: p.list_directory('main', 'missing'))

        assert entries == []
        assert len(session.calls) == 1
        assert stats['failed'] == 1
        assert stats['retries'] == 0

    def test_transient_failure_is_retried(self, config):
        session = FakeSession({f'{CONTENTS}/src': [
            FakeResponse(503, {}, reason='Service Unavailable'),
            FakeResponse(200, [{'name': 'a.js', 'path': 'src/a.js', 'type': 'file'}]),
        ]})

        entries, stats = run(config, session, lambda p: p.list_directory('main', 'src'))

        assert [entry.name for entry in entries] == ['a.js']
        assert len(session.calls) == 2
        assert stats['retries'] == 1

    def test_rate_limit_response_is_retried(self, config):
        session = FakeSession({f'{CONTENTS}/src': [
            FakeResponse(403, {}, headers={'X-RateLimit-Remaining': '0', 'Retry-After': '0'}),
            FakeResponse(200, []),
        ]})

        entries, stats = run(config, session, lambda p: p.list_directory('main', 'src'))

        assert entries == []
        assert stats['retries'] == 1
        assert stats['failed'] == 0

    def test_transport_errors_exhaust_retries(self, config, client_error):
        session = FakeSession({f'{CONTENTS}/src': [client_error]})

        entries, stats = run(config, session, lambda p: p.list_directory('main', 'src'))

        assert entries == []
        assert len(session.calls) == config.max_retries
        assert stats['failed'] == 1

    def test_file_path_listing_wraps_single_entry(self, config):
        session = FakeSession({f'{CONTENTS}/README.md': [FakeResponse(200, {
            'name': 'README.md', 'path': 'README.md', 'type': 'file'
        })]})

        entries, _ = run(config, session, lambda p: p.list_directory('main', 'README.md'))

        assert entries == [RepositoryEntry('README.md', 'README.md')]

    def test_malformed_entries_are_skipped(self, config):
        session = FakeSession({f'{CONTENTS}/src': [FakeResponse(200, [
            {'name': 'a.js'},
            {'name': 'b.js', 'path': 'src/b.js', 'type': 'file'},
        ])]})

        entries, _ = run(config, session, lambda p: p.list_directory('main', 'src'))

        assert [entry.name for entry in entries] == ['b.js']

    def test_invalid_branch_is_empty(self, config):
        session = FakeSession({})
        entries, _ = run(config, session, lambda p: p.list_directory('bad..branch', 'src'))
        assert entries == []
        assert session.calls == []


class TestReadFile:
    def test_decodes_base64_content(self, config):
        session = FakeSession({f'{CONTENTS}/src/app.js': [FakeResponse(200, encoded('const á = await x();\n'))]})

        text, _ = run(config, session, lambda p: p.read_file('main', 'src/app.js'))

        assert text == 'const á = await x();\n'

    def test_undecodable_content_is_none(self, config):
        payload = {'type': 'file', 'size': 2, 'content': base64.b64encode(b'\xff\xfe').decode()}
        session = FakeSession({f'{CONTENTS}/bin.dat': [FakeResponse(200, payload)]})

        text, _ = run(config, session, lambda p: p.read_file('main', 'bin.dat'))

        assert text is None

    def test_empty_file(self, config):
        session = FakeSession({f'{CONTENTS}/empty.txt': [FakeResponse(200, {'type': 'file', 'size': 0, 'content': ''})]})
        text, _ = run(config, session, lambda p: p.read_file('main', 'empty.txt'))
        assert text == ''

    def test_directory_is_not_a_file(self, config):
        session = FakeSession({f'{CONTENTS}/src': [FakeResponse(200, [])]})
        text, _ = run(config, session, lambda p: p.read_file('main', 'src'))
        assert text is None

    def test_missing_file_is_none(self, config):
        text, stats = run(config, FakeSession({}), lambda p: p.read_file('main', 'nope.js'))
        assert text is None
        assert stats['failed'] == 1

    def test_traversal_path_is_rejected(self, config):
        session = FakeSession({})
        text, _ = run(config, session, lambda p: p.read_file('main', '../secrets'))
        assert text is None
        assert session.calls == []


class TestListBranches:
    def test_paginates_and_filters_by_prefix(self, config):
        first_page = [{'name': f'feature/ev1Student{i}'} for i in range(99)] + [{'name': 'main'}]
        second_page = [{'name': 'feature/ev1Last'}, {'name': 'develop'}]
        session = FakeSession({'/branches': [FakeResponse(200, first_page), FakeResponse(200, second_page)]})

        branches, _ = run(config, session, lambda p: p.list_branches('feature/ev1'))

        assert len(branches) == 100
        assert branches[-1] == 'feature/ev1Last'
        assert 'main' not in branches
        assert [call[1]['page'] for call in session.calls] == [1, 2]
        assert session.calls[0][1]['per_page'] == 100

    def test_without_prefix_returns_all(self, config):
        session = FakeSession({'/branches': [FakeResponse(200, [{'name': 'main'}, {'name': 'dev'}])]})
        branches, _ = run(config, session, lambda p: p.list_branches())
        assert branches == ['main', 'dev']

    def test_failure_is_empty(self, config):
        session = FakeSession({'/branches': [FakeResponse(401, {}, reason='Unauthorized')]})
        branches, stats = run(config, session, lambda p: p.list_branches('feature/ev1'))
        assert branches == []
        assert stats['failed'] == 1


class TestCommitsAndRepos:
    def test_list_commits_with_limit(self, config):
        commits = [{'sha': str(i)} for i in range(5)]
        session = FakeSession({'/repos/classroom/course/commits': [FakeResponse(200, commits)]})

        result, _ = run(config, session, lambda p: p.list_commits('feature/ev1Doe', limit=2))

        assert [commit['sha'] for commit in result] == ['0', '1']
        assert session.calls[0][1] == {'sha': 'feature/ev1Doe', 'per_page': 2}

    def test_last_commit_date(self, config):
        payload = [{'commit': {'committer': {'date': '2024-10-07T08:15:00Z'}}}]
        session = FakeSession({'/repos/jdoe/homework/commits': [FakeResponse(200, payload)]})

        date, _ = run(config, session, lambda p: p.last_commit_date('jdoe', 'homework', 'main'))

        assert date == '2024-10-07T08:15:00Z'

    def test_last_commit_date_of_empty_repository(self, config):
        session = FakeSession({'/repos/jdoe/empty/commits': [FakeResponse(200, [])]})
        date, _ = run(config, session, lambda p: p.last_commit_date('jdoe', 'empty', 'main'))
        assert date is None

    def test_user_repos_affiliation(self, config):
        session = FakeSession({'/user/repos': [FakeResponse(200, [{'name': 'a'}])]})
        repos, _ = run(config, session, lambda p: p.list_user_repos('owner'))
        assert repos == [{'name': 'a'}]
        assert session.calls[0][1]['affiliation'] == 'owner'


def test_responses_are_cached(config, tmp_path):
    config.cache_dir = str(tmp_path / 'cache')
    session = FakeSession({f'{CONTENTS}/src': [FakeResponse(200, [])]})

    async def twice(provider):
        await provider.list_directory('main', 'src')
        return await provider.list_directory('main', 'src')

    _, stats = run(config, session, twice)

    assert len(session.calls) == 1
    assert stats['cache_hits'] == 1


def test_cache_key_depends_on_params():
    assert ResponseCache.make_key('u', {'ref': 'a'}) != ResponseCache.make_key('u', {'ref': 'b'})
    assert ResponseCache.make_key('u', {'a': 1, 'b': 2}) == ResponseCache.make_key('u', {'b': 2, 'a': 1})


def test_request_outside_context_fails(config):
    provider = GitHubContentsProvider(config)
    with pytest.raises(GitHubFetchError):
        asyncio.run(provider._request_json('https://api.github.com/rate_limit'))


def test_rate_limiter_records_calls():
    limiter = RateLimiter(max_calls=10, period=60)

    async def acquire_three():
        for _ in range(3):
            await limiter.acquire()

    asyncio.run(acquire_three())
    assert len(limiter.calls) == 3


def test_retry_delay_honours_retry_after(config):
    config.backoff_base = 1.0
    provider = GitHubContentsProvider(config)
    assert provider._retry_delay(1) == 1.0
    assert provider._retry_delay(3) == 4.0
    assert provider._retry_delay(2, '7') == 7.0
