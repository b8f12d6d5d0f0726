"""Post-aggregation filter pipeline.

Each criterion of a Query is an independent predicate over a fully
assembled pull request. Set criteria narrow the running result one after
another; unset criteria are skipped entirely. Predicates are AND-ed, so
their order only affects the intermediate debug logging.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from prfeed_core.models import PullRequest, User
from prfeed_core.query import Query, TriState

logger = logging.getLogger(__name__)

Predicate = Callable[[PullRequest], bool]


def approved_by(me: User, expected: TriState) -> Predicate:
    def check(pr: PullRequest) -> bool:
        return expected.matches(pr.approvals.approved_by(me))

    return check


def without_unresolved_threads_of(me: User) -> Predicate:
    """Drop pull requests where I own an unresolved thread and I spoke last.

    If someone else replied last the ball is in my court, so the pull
    request stays visible.
    """

    def check(pr: PullRequest) -> bool:
        for thread in pr.threads:
            mine = thread.root.author.username == me.username and not thread.resolved
            if mine and thread.last.author.username == me.username:
                return False
        return True

    return check


def satisfies_approval_rules(me: User, expected: TriState) -> Predicate:
    """Compare the reported approval state against ``expected``.

    A pull request where I was asked to review and have not approved yet
    is treated as not satisfying the rules, whatever the remote system
    reports, so it surfaces among the ones that still need approvals.
    """

    def check(pr: PullRequest) -> bool:
        awaiting_me = pr.approvals.requested(me) and not pr.approvals.approved_by(me)
        return expected.matches(pr.approvals.satisfies_rules and not awaiting_me)

    return check


def build_pipeline(query: Query, me: User) -> list[tuple[str, Predicate]]:
    """Return the (name, predicate) steps for every criterion set in ``query``."""
    steps: list[tuple[str, Predicate]] = []

    if query.approved_by_me is not TriState.UNSET:
        steps.append(("approved by me", approved_by(me, query.approved_by_me)))

    if query.without_my_unresolved_threads:
        steps.append(("without my unresolved threads", without_unresolved_threads_of(me)))

    if query.satisfies_approval_rules is not TriState.UNSET:
        steps.append(("satisfies approval rules", satisfies_approval_rules(me, query.satisfies_approval_rules)))

    authors = query.authors
    if authors.include:
        steps.append(("authors include", lambda pr: pr.author.username in authors.include))
    if authors.exclude:
        steps.append(("authors exclude", lambda pr: pr.author.username not in authors.exclude))

    paths = query.project_paths
    if paths.include:
        steps.append(("project paths include", lambda pr: pr.project.full_path in paths.include))
    if paths.exclude:
        steps.append(("project paths exclude", lambda pr: pr.project.full_path not in paths.exclude))

    return steps


def apply_filters(prs: list[PullRequest], query: Query, me: User) -> list[PullRequest]:
    for name, predicate in build_pipeline(query, me):
        kept, dropped = [], []
        for pr in prs:
            (kept if predicate(pr) else dropped).append(pr)
        if dropped:
            logger.debug("Filter %r dropped %d pull request(s): %s", name, len(dropped), [pr.url for pr in dropped])
        prs = kept
    return prs
