"""Shared fixtures: an in-memory engine and model factories."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from prfeed_core.engines.base import Engine
from prfeed_core.models import Approvals, Note, Position, Project, PullRequest, User

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


def make_pr(number: int, project_id: str = "1", author: str = "alice", **kwargs) -> PullRequest:
    project = kwargs.pop("project", None) or Project(id=project_id)
    return PullRequest(
        url=f"https://github.com/acme/repo{project.id}/pull/{number}",
        number=number,
        project=project,
        author=User(author),
        **kwargs,
    )


def comment_note(note_id: str, author: str, minutes: int, path: str = "a.go", line: int = 10, **kwargs) -> Note:
    return Note(
        id=note_id,
        author=User(author),
        created_at=at(minutes),
        body="looks off",
        resolvable=True,
        position=Position(path=path, line=line),
        **kwargs,
    )


class FakeEngine(Engine):
    """Serves canned data and records every call.

    ``errors`` maps (operation, key) to the exception to raise and
    ``delays`` maps (operation, key) to seconds to sleep first; keys are
    the page number, pull request number, or project id.
    """

    def __init__(self, me: str = "me"):
        self.me = User(me)
        self.pages: dict[int, list[PullRequest]] = {}
        self.approvals: dict[int, Approvals] = {}
        self.notes: dict[int, list[Note]] = {}
        self.projects: dict[str, Project] = {}
        self.errors: dict[tuple[str, object], Exception] = {}
        self.delays: dict[tuple[str, object], float] = {}
        self.calls: list[tuple[str, object]] = []
        self.cancelled: list[tuple[str, object]] = []

    async def _enter(self, operation: str, key):
        self.calls.append((operation, key))
        try:
            if (operation, key) in self.delays:
                await asyncio.sleep(self.delays[(operation, key)])
        except asyncio.CancelledError:
            self.cancelled.append((operation, key))
            raise
        if (operation, key) in self.errors:
            raise self.errors[(operation, key)]

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    async def list_pull_requests(self, request):
        page = request.pagination.page
        await self._enter("list", page)
        self.last_request = request
        return list(self.pages.get(page, []))

    async def get_approvals(self, ref):
        await self._enter("approvals", ref.number)
        return self.approvals.get(ref.number, Approvals())

    async def list_notes(self, ref):
        await self._enter("notes", ref.number)
        return list(self.notes.get(ref.number, []))

    async def get_project(self, project_id):
        await self._enter("project", project_id)
        return self.projects.get(project_id, Project(id=project_id, full_path=f"acme/repo{project_id}"))

    async def get_current_user(self):
        await self._enter("me", None)
        return self.me


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()
