"""Tests for the GitHub hosting client using httpx.MockTransport."""

import base64

import httpx
import pytest

from version_conductor.errors import HostingError, ManifestNotFound
from version_conductor.hosting import GitHubClient


# ── Helpers ───────────────────────────────────────────────────

def _repo(name, archived=False, fork=False, owner="acme", branch="main"):
    return {
        "name": name,
        "full_name": f"{owner}/{name}",
        "default_branch": branch,
        "archived": archived,
        "fork": fork,
        "owner": {"login": owner},
        "html_url": f"https://github.com/{owner}/{name}",
    }


def _client(handler, **kwargs):
    sleeps = []
    client = GitHubClient(
        token=kwargs.pop("token", "secret"),
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
        **kwargs,
    )
    return client, sleeps


# ── Repository listing ────────────────────────────────────────

class TestListRepositories:
    def test_paginates_and_filters(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[_repo("third"), _repo("old", archived=True)])
            return httpx.Response(
                200,
                json=[_repo("first", branch="master"), _repo("copy", fork=True), _repo("second")],
                headers={"link": '<https://api.github.com/users/acme/repos?page=2>; rel="next"'},
            )

        client, _ = _client(handler)
        repos = client.list_repositories("github.com/acme")
        assert [r.name for r in repos] == ["first", "second", "third"]
        assert repos[0].default_branch == "master"
        assert repos[0].owning_account_login == "acme"
        assert seen[0].url.path == "/users/acme/repos"
        assert seen[0].url.params["type"] == "owner"
        assert seen[0].url.params["per_page"] == "100"
        assert seen[0].headers["authorization"] == "Bearer secret"
        assert len(seen) == 2

    def test_falls_back_to_organization(self):
        def handler(request):
            if request.url.path == "/users/acme-org/repos":
                return httpx.Response(404, json={"message": "Not Found"})
            assert request.url.path == "/orgs/acme-org/repos"
            assert request.url.params["type"] == "all"
            return httpx.Response(200, json=[_repo("platform", owner="acme-org")])

        client, _ = _client(handler)
        assert [r.name for r in client.list_repositories("acme-org")] == ["platform"]

    def test_unknown_account(self):
        client, _ = _client(lambda request: httpx.Response(404))
        with pytest.raises(HostingError) as exc:
            client.list_repositories("github.com/nobody")
        assert exc.value.status == 404

    def test_anonymous_without_token(self):
        def handler(request):
            assert "authorization" not in request.headers
            return httpx.Response(200, json=[])

        client, _ = _client(handler, token="")
        assert client.list_repositories("acme") == []

    def test_server_error(self):
        client, sleeps = _client(lambda request: httpx.Response(502))
        with pytest.raises(HostingError) as exc:
            client.list_repositories("acme")
        assert exc.value.status == 502
        assert sleeps == []


# ── File content ──────────────────────────────────────────────

class TestFetchFileContent:
    def test_decodes_base64(self):
        body = b"module github.com/acme/widget\n"

        def handler(request):
            assert request.url.path == "/repos/acme/widget/contents/go.mod"
            assert request.url.params["ref"] == "main"
            return httpx.Response(200, json={
                "type": "file",
                "encoding": "base64",
                "content": base64.b64encode(body).decode() + "\n",
            })

        client, _ = _client(handler)
        assert client.fetch_file_content("github.com/acme", "widget", "go.mod", "main") == body

    def test_not_found(self):
        client, _ = _client(lambda request: httpx.Response(404))
        with pytest.raises(ManifestNotFound) as exc:
            client.fetch_file_content("github.com/acme", "widget", "go.mod", "main")
        assert exc.value.repository == "widget"
        assert exc.value.path == "go.mod"

    def test_directory_is_not_a_file(self):
        client, _ = _client(lambda request: httpx.Response(200, json=[{"type": "file"}]))
        with pytest.raises(ManifestNotFound):
            client.fetch_file_content("acme", "widget", "go.mod", "main")


# ── Rate limits ───────────────────────────────────────────────

class TestRetries:
    def test_retry_after_honored(self):
        responses = iter([
            httpx.Response(429, headers={"retry-after": "2"}),
            httpx.Response(200, json=[_repo("widget")]),
        ])
        client, sleeps = _client(lambda request: next(responses))
        assert [r.name for r in client.list_repositories("acme")] == ["widget"]
        assert sleeps == [2.0]

    def test_exponential_backoff_on_exhausted_quota(self):
        responses = iter([
            httpx.Response(403, headers={"x-ratelimit-remaining": "0"}),
            httpx.Response(403, headers={"x-ratelimit-remaining": "0"}),
            httpx.Response(200, json=[]),
        ])
        client, sleeps = _client(lambda request: next(responses), initial_backoff=0.5)
        assert client.list_repositories("acme") == []
        assert sleeps == [0.5, 1.0]

    def test_gives_up_after_max_retries(self):
        client, sleeps = _client(lambda request: httpx.Response(429), max_retries=2, initial_backoff=0.1)
        with pytest.raises(HostingError) as exc:
            client.list_repositories("acme")
        assert exc.value.status == 429
        assert len(sleeps) == 2

    def test_plain_forbidden_not_retried(self):
        client, sleeps = _client(lambda request: httpx.Response(403, headers={"x-ratelimit-remaining": "12"}))
        with pytest.raises(HostingError):
            client.list_repositories("acme")
        assert sleeps == []

    def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = _client(handler)
        with pytest.raises(HostingError):
            client.list_repositories("acme")

    def test_quota_reset_header_sets_delay(self, monkeypatch):
        monkeypatch.setattr("version_conductor.hosting.time.time", lambda: 1000.0)
        responses = iter([
            httpx.Response(403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1030"}),
            httpx.Response(200, json=[]),
        ])
        client, sleeps = _client(lambda request: next(responses), initial_backoff=0.5)
        assert client.list_repositories("acme") == []
        assert sleeps == [30.0]

    def test_retries_disabled(self):
        client, sleeps = _client(lambda request: httpx.Response(429), max_retries=0)
        with pytest.raises(HostingError) as exc:
            client.list_repositories("acme")
        assert exc.value.status == 429
        assert sleeps == []
