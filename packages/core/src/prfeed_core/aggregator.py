"""Pull request aggregation.

The listing call only returns the bare pull requests. Each one is then
completed with three independent lookups that run concurrently:

  project    → through the shared ProjectCache
  approvals  → engine.get_approvals()
  history    → engine.list_notes() → assemble_history() → build_threads()

Aggregation is all-or-nothing. A pull request missing its approvals or
threads would silently fall through the filters as "does not match", so
the first failure cancels every sibling lookup, every sibling pull
request, and the listing itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from prfeed_core.cache import ProjectCache
from prfeed_core.engines.base import Engine
from prfeed_core.errors import ItemError
from prfeed_core.history import assemble_history, build_threads
from prfeed_core.models import PullRequest
from prfeed_core.pagination import list_all
from prfeed_core.query import ListRequest, Pagination

logger = logging.getLogger(__name__)

# Page size used when the caller asked for everything.
LIST_ALL_PER_PAGE = 100


def _first_error(group: BaseExceptionGroup) -> BaseException:
    err: BaseException = group
    while isinstance(err, BaseExceptionGroup):
        err = err.exceptions[0]
    return err


class Aggregator:
    def __init__(self, engine: Engine, projects: ProjectCache | None = None):
        self._engine = engine
        self._projects = projects if projects is not None else ProjectCache()

    async def list_pull_requests(self, request: ListRequest) -> list[PullRequest]:
        """List and fully assemble every pull request matching ``request``.

        Without pagination bounds all pages are walked; with bounds exactly
        one page is fetched.
        """
        if not request.pagination.empty():
            return await self._load_page(replace(request, pagination=request.pagination.resolved()))

        async def fetch_page(page: int) -> list[PullRequest]:
            return await self._load_page(
                replace(request, pagination=Pagination(page=page, per_page=LIST_ALL_PER_PAGE))
            )

        return await list_all(1, fetch_page)

    async def _load_page(self, request: ListRequest) -> list[PullRequest]:
        raw = await self._engine.list_pull_requests(request)
        logger.debug("Listed %d pull request(s) at page %d", len(raw), request.pagination.page)
        return await self.load_all(raw)

    async def load_all(self, prs: list[PullRequest]) -> list[PullRequest]:
        """Assemble ``prs`` concurrently, preserving their order."""
        if not prs:
            return []

        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self.load(pr)) for pr in prs]
        except BaseExceptionGroup as eg:
            raise _first_error(eg)

        return [task.result() for task in tasks]

    async def load(self, pr: PullRequest) -> PullRequest:
        """Complete one listed pull request with project, approvals and history."""
        ref = pr.ref
        try:
            async with asyncio.TaskGroup() as tg:
                project = tg.create_task(self._projects.get(ref.project_id, self._engine.get_project))
                approvals = tg.create_task(self._engine.get_approvals(ref))
                activity = tg.create_task(self._load_activity(pr))
        except BaseExceptionGroup as eg:
            cause = _first_error(eg)
            raise ItemError(pr.url, cause) from cause

        history, threads, diagnostics = activity.result()
        return replace(
            pr,
            project=project.result(),
            approvals=approvals.result(),
            history=history,
            threads=threads,
            diagnostics=diagnostics,
        )

    async def _load_activity(self, pr: PullRequest):
        notes = await self._engine.list_notes(pr.ref)
        history = assemble_history(notes)
        threads, diagnostics = build_threads(history)
        for msg in diagnostics:
            logger.warning("%s: %s", pr.url, msg)
        return tuple(history), tuple(threads), tuple(diagnostics)
