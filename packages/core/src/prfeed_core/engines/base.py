"""Abstract git engine interface.

An engine is the only code that talks to a remote code-review system.
The aggregator depends on Engine rather than a concrete backend, so it can
be exercised with an in-memory fake and backends are swappable.

Every method is a coroutine and suspends only on network round-trips.
Implementations translate their client library's failures into
``prfeed_core.errors.TransportError`` and let cancellation propagate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prfeed_core.models import Approvals, ItemRef, Note, Project, PullRequest, User
    from prfeed_core.query import ListRequest


class Engine(ABC):
    @abstractmethod
    async def list_pull_requests(self, request: ListRequest) -> list[PullRequest]:
        """Return one page of pull requests matching ``request``.

        Items carry only what the listing call reports: ``project`` holds
        just the project id, and approvals, history and threads are empty.
        An empty list means the page is past the end.
        """

    @abstractmethod
    async def get_approvals(self, ref: ItemRef) -> Approvals:
        """Return the approval state of one pull request."""

    @abstractmethod
    async def list_notes(self, ref: ItemRef) -> list[Note]:
        """Return every activity note of one pull request, in any order."""

    @abstractmethod
    async def get_project(self, project_id: str) -> Project:
        """Return metadata of one project."""

    @abstractmethod
    async def get_current_user(self) -> User:
        """Return the authenticated user."""

    def close(self) -> None:
        """Release any resources held by the engine.

        Subclasses that need cleanup override this.
        """
