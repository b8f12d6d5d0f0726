"""Conversions between PyGithub objects and prfeed models.

Everything here is synchronous and side-effect free apart from the API
calls PyGithub makes lazily; GitHubEngine runs these helpers off the event
loop.
"""

from __future__ import annotations

import logging

from github import GithubException

from prfeed_core.models import Approvals, Note, Position, Project, PullRequest, State, User
from prfeed_core.query import ListRequest, SortBy

logger = logging.getLogger(__name__)

# GitHub only serves the first 1000 results of any search.
SEARCH_RESULT_LIMIT = 1000

_SORT_FIELDS = {SortBy.CREATED_AT: "created", SortBy.UPDATED_AT: "updated"}

_STATE_QUALIFIERS = {
    State.DRAFT: ["is:open", "draft:true"],
    State.OPEN: ["is:open", "draft:false"],
    State.CLOSED: ["is:closed", "is:unmerged", "draft:false"],
    State.MERGED: ["is:merged", "draft:false"],
}

# Approval notes are worded the way the history assembler expects them.
APPROVED_BODY = "approved this pull request"
UNAPPROVED_BODY = "unapproved this pull request"

# A null review decision means the base branch requires no review.
_SATISFIED_DECISIONS = ("APPROVED", None)

_REVIEW_DECISION_QUERY = """
query($owner: String!, $repo: String!, $pr: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) { reviewDecision }
  }
}
"""

_THREADS_QUERY = """
query($owner: String!, $repo: String!, $pr: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) {
      reviewThreads(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          isResolved
          resolvedBy { login }
          comments(first: 1) { nodes { databaseId } }
        }
      }
    }
  }
}
"""


def _quote(value: str) -> str:
    return f'"{value}"' if any(c.isspace() for c in value) else value


def build_search_query(request: ListRequest, scope: str) -> str:
    """Translate the backend half of a query into GitHub search syntax."""
    parts = ["is:pr"]
    if scope:
        parts.append(scope)
    if request.state is not None:
        parts.extend(_STATE_QUALIFIERS[request.state])
    else:
        parts.append("draft:false")
    parts.extend(f"label:{_quote(label)}" for label in sorted(request.labels.include))
    parts.extend(f"-label:{_quote(label)}" for label in sorted(request.labels.exclude))
    return " ".join(parts)


def build_sort_params(request: ListRequest) -> dict:
    params = {}
    if request.sort.by in _SORT_FIELDS:
        params["sort"] = _SORT_FIELDS[request.sort.by]
    if request.sort.order is not None:
        params["order"] = request.sort.order.value
    return params


def to_user(user) -> User:
    # Deleted accounts come back as None.
    return User(username=user.login if user is not None else "ghost")


def _state(pr) -> State:
    if pr.draft:
        return State.DRAFT
    if pr.merged:
        return State.MERGED
    if pr.state == "closed":
        return State.CLOSED
    return State.OPEN


def to_pull_request(pr) -> PullRequest:
    """Convert a PyGithub PullRequest into a listed, not yet assembled, item."""
    state = _state(pr)
    return PullRequest(
        url=pr.html_url,
        number=pr.number,
        project=Project(id=str(pr.base.repo.id)),
        title=pr.title or "",
        body=pr.body or "",
        author=to_user(pr.user),
        labels=tuple(label.name for label in pr.labels),
        source_branch=pr.head.ref,
        target_branch=pr.base.ref,
        assignees=tuple(to_user(u) for u in pr.assignees),
        state=state,
        created_at=pr.created_at,
        # closed_at is set on merged pull requests too, but the merge time is what matters.
        closed_at=pr.merged_at if state == State.MERGED else pr.closed_at,
        updated_at=pr.updated_at,
    )


def to_project(repo) -> Project:
    return Project(id=str(repo.id), url=repo.html_url, name=repo.name, full_path=repo.full_name)


def get_required_approvals(repo, branch: str) -> int:
    """Return the branch protection's required approving review count, 0 if there is none.

    Only used for display. Whether the rules are met is GitHub's call, see
    get_review_decision().
    """
    try:
        reviews = repo.get_branch(branch).get_required_pull_request_reviews()
    except GithubException as e:
        # 404 = branch not protected; 403 = token may not read protection settings.
        if e.status != 404:
            logger.warning("Could not read branch protection of %s@%s: %s", repo.full_name, branch, e)
        return 0
    return reviews.required_approving_review_count or 0


def get_review_decision(requester, owner: str, repo: str, number: int) -> str | None:
    """Return GitHub's ``reviewDecision`` for a pull request.

    One of APPROVED, CHANGES_REQUESTED or REVIEW_REQUIRED; None when the
    base branch requires no review at all. GitHub folds branch protection,
    rulesets and code owners into this value.
    """
    variables = {"owner": owner, "repo": repo, "pr": number}
    _, data = requester.graphql_query(_REVIEW_DECISION_QUERY, variables)
    return data.get("data", data)["repository"]["pullRequest"]["reviewDecision"]


def get_approvals(pr, required: int, review_decision: str | None) -> Approvals:
    """Summarise the reviews of a pull request.

    Only the latest non-comment review of each user counts, matching how
    GitHub itself decides whether a review still stands. Whether the
    approval rules are satisfied is taken from ``review_decision`` as is.
    """
    latest: dict[str, str] = {}
    for review in pr.get_reviews():
        if review.user is None or review.state not in ("APPROVED", "CHANGES_REQUESTED", "DISMISSED"):
            continue
        latest[review.user.login] = review.state

    approved = tuple(User(username=login) for login, state in latest.items() if state == "APPROVED")
    return Approvals(
        requested_from=tuple(to_user(u) for u in pr.requested_reviewers or ()),
        by=approved,
        satisfies_rules=review_decision in _SATISFIED_DECISIONS,
        required=required,
    )


def get_thread_resolutions(requester, owner: str, repo: str, number: int) -> dict[int, User]:
    """Map the root comment id of every resolved review thread to its resolver.

    The REST API does not expose thread resolution, so this goes through
    GraphQL.
    """
    resolved: dict[int, User] = {}
    cursor = None
    while True:
        variables = {"owner": owner, "repo": repo, "pr": number, "cursor": cursor}
        _, data = requester.graphql_query(_THREADS_QUERY, variables)
        threads = data.get("data", data)["repository"]["pullRequest"]["reviewThreads"]
        for node in threads["nodes"]:
            comments = node["comments"]["nodes"]
            if not node["isResolved"] or not comments:
                continue
            resolver = node.get("resolvedBy") or {}
            resolved[comments[0]["databaseId"]] = User(username=resolver.get("login", "ghost"))
        if not threads["pageInfo"]["hasNextPage"]:
            return resolved
        cursor = threads["pageInfo"]["endCursor"]


def get_notes(pr, resolutions: dict[int, User]) -> list[Note]:
    """Collect every activity note of a pull request.

    Review comments become resolvable notes positioned at ``path:line``;
    replies share the position of the comment they reply to. The last
    comment of a resolved thread carries the resolution. Conversation
    comments are plain notes and submitted reviews become approval notes.
    """
    review_comments = list(pr.get_review_comments())
    by_id = {c.id: c for c in review_comments}

    threads: dict[int, list] = {}
    for c in review_comments:
        threads.setdefault(c.in_reply_to_id or c.id, []).append(c)

    notes: list[Note] = []
    for root_id, comments in threads.items():
        root = by_id.get(root_id, comments[0])
        # c.line is None for comments whose line no longer exists in the current diff
        # (e.g. after a force-push). Fall back to original_line in that case.
        line = root.line if root.line is not None else root.original_line
        position = Position(path=root.path, line=line)
        resolver = resolutions.get(root_id)
        last = max(comments, key=lambda c: c.created_at)
        for c in comments:
            resolved = resolver is not None and c is last
            notes.append(
                Note(
                    id=f"rc:{c.id}",
                    author=to_user(c.user),
                    created_at=c.created_at,
                    body=c.body or "",
                    resolvable=True,
                    position=position,
                    resolved=resolved,
                    resolved_by=resolver if resolved else None,
                    resolved_at=c.created_at if resolved else None,
                )
            )

    for c in pr.get_issue_comments():
        notes.append(Note(id=f"ic:{c.id}", author=to_user(c.user), created_at=c.created_at, body=c.body or ""))

    for review in pr.get_reviews():
        if review.state == "APPROVED":
            body = APPROVED_BODY
        elif review.state == "DISMISSED":
            body = UNAPPROVED_BODY
        else:
            continue
        notes.append(Note(id=f"rv:{review.id}", author=to_user(review.user), created_at=review.submitted_at, body=body))

    return notes
