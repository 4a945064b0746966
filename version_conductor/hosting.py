"""Hosting-service collaborator: repository listing and file fetches.

The graph builder only depends on the ``HostingClient`` protocol.
``GitHubClient`` is the concrete implementation; it owns authentication,
pagination and rate-limit backoff so the builder never has to.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any, Callable, Protocol

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from version_conductor.ecosystems import account_owner
from version_conductor.errors import HostingError, ManifestNotFound
from version_conductor.models import RepositoryInfo

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
PER_PAGE = 100


class HostingClient(Protocol):
    def list_repositories(self, account: str) -> list[RepositoryInfo]:
        """Non-archived, non-forked repositories owned by ``account``."""
        ...

    def fetch_file_content(self, account: str, repository: str, path: str, ref: str) -> bytes:
        """Raw file bytes at ``ref``; raises ``ManifestNotFound`` if absent."""
        ...


class GitHubClient:
    """Synchronous GitHub REST client.

    Args:
        token: Personal access token; anonymous when empty.
        base_url: API root, overridable for GitHub Enterprise.
        max_retries: Retries for rate-limited (429 / exhausted 403) responses.
        initial_backoff: First retry delay in seconds, doubled per attempt.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        token: str = "",
        base_url: str = DEFAULT_API_URL,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.max_retries = max(0, max_retries)
        self.initial_backoff = initial_backoff
        self._sleep = sleep
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    # ── HostingClient ────────────────────────────────────────

    def list_repositories(self, account: str) -> list[RepositoryInfo]:
        owner = account_owner(account)
        try:
            raw = self._paginate(f"/users/{owner}/repos", {"type": "owner"})
        except _NotFound:
            try:
                raw = self._paginate(f"/orgs/{owner}/repos", {"type": "all"})
            except _NotFound:
                raise HostingError(f"no user or organization named {owner!r}", status=404) from None

        repos = [_repository_from_json(r) for r in raw]
        kept = [r for r in repos if not r.archived and not r.fork]
        logger.debug("%s: %d repositories, %d after dropping archived/forks", owner, len(repos), len(kept))
        return kept

    def fetch_file_content(self, account: str, repository: str, path: str, ref: str) -> bytes:
        owner = account_owner(account)
        params = {"ref": ref} if ref else None
        try:
            response = self._request("GET", f"/repos/{owner}/{repository}/contents/{path}", params=params)
        except _NotFound:
            raise ManifestNotFound(account, repository, path) from None

        body = response.json()
        if not isinstance(body, dict) or body.get("type", "file") != "file":
            raise ManifestNotFound(account, repository, path)
        content = body.get("content") or ""
        if body.get("encoding", "base64") != "base64":
            return content.encode("utf-8")
        try:
            return base64.b64decode(content)
        except (binascii.Error, ValueError) as e:
            raise HostingError(f"undecodable content for {owner}/{repository}/{path}: {e}") from e

    # ── Transport ────────────────────────────────────────────

    def _paginate(self, url: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        next_url: str | None = url
        next_params: dict[str, Any] | None = {**params, "per_page": PER_PAGE}
        while next_url:
            response = self._request("GET", next_url, params=next_params)
            page = response.json()
            if not isinstance(page, list):
                raise HostingError(f"unexpected response for {url}", status=response.status_code)
            items.extend(page)
            next_url = response.links.get("next", {}).get("url")
            next_params = None  # the next link carries its own query
        return items

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        retrying = Retrying(
            retry=retry_if_result(_is_rate_limited),
            wait=_WaitRetryAfter(wait_exponential(multiplier=self.initial_backoff)),
            stop=stop_after_attempt(self.max_retries + 1),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.INFO),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        response = retrying(self._send, method, url, **kwargs)
        if response.is_error:
            raise HostingError(f"{method} {url} failed", status=response.status_code)
        return response

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise HostingError(f"{method} {url} failed: {e}") from e
        if response.status_code == 404:
            raise _NotFound(url)
        return response


class _NotFound(Exception):
    pass


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"


def _retry_after(response: httpx.Response) -> float | None:
    """Delay the server asked for, from Retry-After or the quota reset time."""
    retry_after = response.headers.get("retry-after")
    if retry_after:
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            pass
    reset = response.headers.get("x-ratelimit-reset")
    if reset:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            pass
    return None


class _WaitRetryAfter(wait_base):
    """Honour the server's requested delay; fall back to ``fallback`` otherwise."""

    def __init__(self, fallback: wait_base):
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and not outcome.failed:
            delay = _retry_after(outcome.result())
            if delay is not None:
                return delay
        return self.fallback(retry_state)


def _repository_from_json(data: dict[str, Any]) -> RepositoryInfo:
    owner = data.get("owner") or {}
    return RepositoryInfo(
        name=data.get("name", ""),
        default_branch=data.get("default_branch") or "main",
        archived=bool(data.get("archived")),
        fork=bool(data.get("fork")),
        owning_account_login=owner.get("login", ""),
        full_name=data.get("full_name", ""),
        description=data.get("description") or "",
        private=bool(data.get("private")),
        html_url=data.get("html_url", ""),
    )
