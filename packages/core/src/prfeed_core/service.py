"""Pull request listing service.

Consumers use Service and never the naked engine: it validates queries,
drives the aggregator, and applies the criteria only a fully assembled
pull request can answer.
"""

from __future__ import annotations

import asyncio
import logging

from prfeed_core.aggregator import Aggregator
from prfeed_core.cache import ProjectCache
from prfeed_core.engines.base import Engine
from prfeed_core.errors import ListingCancelled
from prfeed_core.filters import apply_filters
from prfeed_core.models import PullRequest, User
from prfeed_core.query import Query, SortBy, SortOrder, validate_query

logger = logging.getLogger(__name__)


class Service:
    def __init__(self, engine: Engine, me: User, projects: ProjectCache | None = None):
        self._engine = engine
        self._aggregator = Aggregator(engine, projects)
        self.me = me

    @classmethod
    async def create(cls, engine: Engine, projects: ProjectCache | None = None) -> Service:
        """Build a service for the user the engine is authenticated as."""
        me = await engine.get_current_user()
        logger.debug("Authenticated as %s", me.username)
        return cls(engine, me, projects)

    async def list_pull_requests(self, query: Query, timeout: float | None = None) -> list[PullRequest]:
        """Return every pull request matching ``query``.

        Raises ValidationError before any remote call when the query has no
        criterion the remote side can narrow by, and ListingCancelled when
        ``timeout`` seconds pass before the listing completes.
        """
        validate_query(query)
        logger.debug("List pull requests with criteria %s", query)

        try:
            async with asyncio.timeout(timeout):
                prs = await self._aggregator.list_pull_requests(query.request)
        except TimeoutError as e:
            raise ListingCancelled(f"listing pull requests timed out after {timeout}s") from e

        logger.debug("Listed %d pull request(s)", len(prs))

        prs = apply_filters(prs, query, self.me)

        # The remote side cannot sort by title.
        sort = query.request.sort
        if sort.by is SortBy.TITLE:
            prs = sorted(prs, key=lambda pr: pr.title.lower(), reverse=sort.order is SortOrder.DESC)

        return prs
