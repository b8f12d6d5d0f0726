"""Event history and review thread reconstruction.

The remote system hands back a flat, unordered list of notes per pull
request. This module turns them into:

  assemble_history()  notes  → deduplicated events, ascending by time
  build_threads()     events → one comment chain per review position

Which note means what is decided by classify_note() alone. Approvals are
recognised by the wording of the note body, which is owned by the remote
system; when that wording changes only the patterns below need updating.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import replace

from prfeed_core.models import SYSTEM_USER, Comment, Event, EventKind, Note, ObjectType, Thread

logger = logging.getLogger(__name__)

_UNAPPROVED_RE = re.compile(r"\bunapproved this (?:merge|pull) request", re.IGNORECASE)
_APPROVED_RE = re.compile(r"\bapproved this (?:merge|pull) request", re.IGNORECASE)

_RESOLVED_SUFFIX = "!resolved"

# Tie-break for equal timestamps: a resolution never sorts before the reply it closes.
_KIND_ORDER = {
    EventKind.COMMENTED: 0,
    EventKind.REPLIED: 1,
    EventKind.THREAD_RESOLVED: 2,
    EventKind.APPROVED: 3,
    EventKind.UNAPPROVED: 4,
}


def classify_note(note: Note, roots: set[str]) -> list[Event]:
    """Translate one note into zero, one or two events.

    ``roots`` holds the thread keys already opened in this pull request;
    it is read here and updated by the caller. An empty list means the
    note carries nothing the review model tracks.
    """
    actor = SYSTEM_USER if note.system else note.author

    if _UNAPPROVED_RE.search(note.body):
        return [Event(id=note.id, actor=actor, timestamp=note.created_at, kind=EventKind.UNAPPROVED)]
    if _APPROVED_RE.search(note.body):
        return [Event(id=note.id, actor=actor, timestamp=note.created_at, kind=EventKind.APPROVED)]

    if not note.resolvable:
        return []

    key = note.thread_key
    event = Event(
        id=note.id,
        actor=actor,
        timestamp=note.created_at,
        kind=EventKind.REPLIED if key in roots else EventKind.COMMENTED,
        object_id=key,
        object_type=ObjectType.COMMENT,
    )
    if not note.resolved:
        return [event]

    resolution = Event(
        id=note.id + _RESOLVED_SUFFIX,
        actor=note.resolved_by or actor,
        timestamp=note.resolved_at or note.created_at,
        kind=EventKind.THREAD_RESOLVED,
        object_id=key,
        object_type=ObjectType.COMMENT,
    )
    return [event, resolution]


def sort_events(events: Iterable[Event]) -> list[Event]:
    return sorted(events, key=lambda ev: (ev.timestamp, _KIND_ORDER[ev.kind]))


def assemble_history(notes: list[Note]) -> list[Event]:
    """Build the ordered event log of one pull request from its notes."""
    events: set[Event] = set()
    roots: set[str] = set()

    # A note reported twice must not reopen its own thread as a reply.
    for note in sorted(set(notes), key=lambda n: (n.created_at, n.id)):
        for event in classify_note(note, roots):
            events.add(event)
            if event.kind == EventKind.COMMENTED:
                roots.add(event.object_id)

    logger.debug("Assembled %d event(s) from %d note(s)", len(events), len(notes))
    return sort_events(events)


def build_threads(history: Iterable[Event]) -> tuple[list[Thread], list[str]]:
    """Rebuild review threads from an ordered event log.

    Returns the threads and a list of diagnostics. A reply or resolution
    that points at a thread never opened in this history is reported in the
    diagnostics and skipped; it never fails the build.
    """
    chains: dict[str, list[Comment]] = {}
    diagnostics: list[str] = []

    for event in history:
        if event.kind == EventKind.COMMENTED:
            chains[event.object_id] = [Comment(author=event.actor, created_at=event.timestamp)]
        elif event.kind in (EventKind.REPLIED, EventKind.THREAD_RESOLVED):
            chain = chains.get(event.object_id)
            if chain is None:
                diagnostics.append(f"thread {event.object_id!r} not found for {event.kind.value} event {event.id}")
                continue
            if event.kind == EventKind.REPLIED:
                chain.append(Comment(author=event.actor, created_at=event.timestamp))
            else:
                chains[event.object_id] = [replace(c, resolved=True) for c in chain]

    threads = [Thread(object_id=key, comments=tuple(chain)) for key, chain in chains.items()]
    return threads, diagnostics
