"""GitHub engine backed by PyGithub.

PyGithub is blocking, so every call runs in a worker thread via
asyncio.to_thread(). Cancelling the awaiting task returns control
immediately; the worker finishes its request in the background and its
result is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TypeVar

from github import Auth, Github, GithubException

from prfeed_core.cache import ExpiringCache
from prfeed_core.engines.base import Engine
from prfeed_core.errors import TransportError
from prfeed_core.gh.pull_request import (
    SEARCH_RESULT_LIMIT,
    build_search_query,
    build_sort_params,
    get_approvals,
    get_notes,
    get_required_approvals,
    get_review_decision,
    get_thread_resolutions,
    to_pull_request,
    to_project,
)
from prfeed_core.models import Approvals, ItemRef, Note, Project, PullRequest, User
from prfeed_core.query import ListRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_PER_PAGE = 30


class GitHubEngine(Engine):
    """Lists pull requests through the GitHub search API.

    ``scope`` is a search qualifier that bounds which pull requests are
    considered at all (e.g. ``org:acme`` or ``involves:@me``).
    """

    def __init__(self, token: str, base_url: str | None = None, scope: str = "involves:@me"):
        self._token = token
        self._base_url = base_url
        self._scope = scope
        self._clients: dict[int, Github] = {}
        # Pull requests seen by the current listing, so per-item lookups do not re-fetch them.
        self._pulls: dict[ItemRef, object] = {}
        # Required approval count per "<project id>@<branch>".
        self._required: ExpiringCache[int] = ExpiringCache()

    def _client(self, per_page: int = _DEFAULT_PER_PAGE) -> Github:
        # PyGithub fixes the page size per client.
        client = self._clients.get(per_page)
        if client is None:
            kwargs = {"auth": Auth.Token(self._token), "per_page": per_page}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            client = self._clients[per_page] = Github(**kwargs)
        return client

    async def _call(self, operation: str, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (GithubException, OSError) as e:
            raise TransportError(operation, e) from e

    def _pull(self, ref: ItemRef):
        pr = self._pulls.get(ref)
        if pr is None:
            pr = self._client().get_repo(int(ref.project_id)).get_pull(ref.number)
            self._pulls[ref] = pr
        return pr

    async def list_pull_requests(self, request: ListRequest) -> list[PullRequest]:
        pagination = request.pagination.resolved()
        if (pagination.page - 1) * pagination.per_page >= SEARCH_RESULT_LIMIT:
            logger.warning(
                "GitHub search is capped at %d results; stopping at page %d", SEARCH_RESULT_LIMIT, pagination.page
            )
            return []

        if pagination.page == 1:
            # A new listing starts; drop the pull requests kept from the previous one.
            self._pulls.clear()

        query = build_search_query(request, self._scope)
        sort_params = build_sort_params(request)

        def fetch() -> list[PullRequest]:
            results = self._client(pagination.per_page).search_issues(query, **sort_params)
            # PyGithub pages are zero-based.
            issues = results.get_page(pagination.page - 1)
            prs = []
            for issue in issues:
                pr = issue.as_pull_request()
                item = to_pull_request(pr)
                self._pulls[item.ref] = pr
                prs.append(item)
            return prs

        logger.debug("Searching %r (page %d, %d per page)", query, pagination.page, pagination.per_page)
        return await self._call(f"search pull requests {query!r}", fetch)

    async def get_approvals(self, ref: ItemRef) -> Approvals:
        def fetch() -> Approvals:
            pr = self._pull(ref)
            repo = pr.base.repo
            key = f"{ref.project_id}@{pr.base.ref}"
            required = self._required.peek(key)
            if required is None:
                required = get_required_approvals(repo, pr.base.ref)
                self._required.set(key, required)
            decision = get_review_decision(self._client().requester, repo.owner.login, repo.name, pr.number)
            return get_approvals(pr, required, decision)

        return await self._call(f"get approvals of {ref.project_id}#{ref.number}", fetch)

    async def list_notes(self, ref: ItemRef) -> list[Note]:
        def fetch() -> list[Note]:
            pr = self._pull(ref)
            repo = pr.base.repo
            resolutions = get_thread_resolutions(self._client().requester, repo.owner.login, repo.name, pr.number)
            return get_notes(pr, resolutions)

        return await self._call(f"list notes of {ref.project_id}#{ref.number}", fetch)

    async def get_project(self, project_id: str) -> Project:
        def fetch() -> Project:
            return to_project(self._client().get_repo(int(project_id)))

        return await self._call(f"get project {project_id}", fetch)

    async def get_current_user(self) -> User:
        def fetch() -> User:
            return User(username=self._client().get_user().login)

        return await self._call("get current user", fetch)

    def close(self) -> None:
        for client in self._clients.values():
            client.close()
        self._clients.clear()
