"""Pull request data models.

Everything here is a plain value object. Items are assembled by the
aggregator and never mutated after they are handed to a caller, so all
models are frozen dataclasses and collections are tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class State(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class EventKind(str, Enum):
    COMMENTED = "commented"
    REPLIED = "replied"
    THREAD_RESOLVED = "thread-resolved"
    APPROVED = "approved"
    UNAPPROVED = "unapproved"


class ObjectType(str, Enum):
    COMMENT = "comment"
    COMMIT = "commit"


@dataclass(frozen=True)
class User:
    username: str


# Automated actors (e.g. the platform posting a status note) are reported as this user.
SYSTEM_USER = User(username="system")


@dataclass(frozen=True)
class Project:
    id: str
    url: str = ""
    name: str = ""
    full_path: str = ""


@dataclass(frozen=True)
class Position:
    """A review position inside a diff."""

    path: str
    line: int | None

    @property
    def key(self) -> str:
        return f"{self.path}:{self.line if self.line is not None else 0}"


@dataclass(frozen=True)
class Note:
    """A raw activity record as reported by the remote system.

    Notes arrive unordered and loosely structured; ``prfeed_core.history``
    turns them into events.
    """

    id: str
    author: User
    created_at: datetime
    body: str = ""
    system: bool = False
    resolvable: bool = False
    position: Position | None = None
    resolved: bool = False
    resolved_by: User | None = None
    resolved_at: datetime | None = None

    @property
    def thread_key(self) -> str:
        """Key of the review thread this note belongs to; empty when not tied to a file line."""
        return self.position.key if self.position is not None else ""


@dataclass(frozen=True)
class Event:
    """A normalized, typed fact derived from a note.

    Equality is by value: two notes that normalize to the same event
    collapse into one when collected into a set.
    """

    id: str
    actor: User
    timestamp: datetime
    kind: EventKind
    object_id: str = ""
    object_type: ObjectType | None = None


@dataclass(frozen=True)
class Comment:
    author: User
    created_at: datetime
    resolved: bool = False


@dataclass(frozen=True)
class Thread:
    """An ordered chain of comments anchored to one review position."""

    object_id: str
    comments: tuple[Comment, ...]

    @property
    def root(self) -> Comment:
        return self.comments[0]

    @property
    def last(self) -> Comment:
        return self.comments[-1]

    @property
    def resolved(self) -> bool:
        return self.root.resolved


@dataclass(frozen=True)
class Approvals:
    """Approval state exactly as the remote system reports it."""

    requested_from: tuple[User, ...] = ()
    by: tuple[User, ...] = ()
    satisfies_rules: bool = False
    required: int = 0

    def approved_by(self, user: User) -> bool:
        return any(u.username == user.username for u in self.by)

    def requested(self, user: User) -> bool:
        return any(u.username == user.username for u in self.requested_from)


@dataclass(frozen=True)
class ItemRef:
    """Addresses one pull request on the remote system."""

    project_id: str
    number: int


@dataclass(frozen=True)
class PullRequest:
    url: str
    number: int
    project: Project
    title: str = ""
    body: str = ""
    author: User = User(username="")
    labels: tuple[str, ...] = ()
    source_branch: str = ""
    target_branch: str = ""
    assignees: tuple[User, ...] = ()
    approvals: Approvals = Approvals()
    history: tuple[Event, ...] = ()
    threads: tuple[Thread, ...] = ()
    state: State = State.OPEN
    created_at: datetime | None = None
    closed_at: datetime | None = None
    updated_at: datetime | None = None
    diagnostics: tuple[str, ...] = field(default=(), compare=False)

    @property
    def ref(self) -> ItemRef:
        return ItemRef(project_id=self.project.id, number=self.number)

    @property
    def unresolved_threads(self) -> tuple[Thread, ...]:
        return tuple(t for t in self.threads if not t.resolved)
