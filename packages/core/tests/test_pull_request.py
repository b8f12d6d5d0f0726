"""Tests for PyGithub conversion helpers."""

from unittest.mock import MagicMock

import pytest
from conftest import at
from github import GithubException

from prfeed_core.gh.pull_request import (
    APPROVED_BODY,
    UNAPPROVED_BODY,
    build_search_query,
    build_sort_params,
    get_approvals,
    get_notes,
    get_required_approvals,
    get_review_decision,
    get_thread_resolutions,
    to_project,
    to_pull_request,
    to_user,
)
from prfeed_core.history import assemble_history, build_threads
from prfeed_core.models import EventKind, State, User
from prfeed_core.query import Filter, ListRequest, Sort, SortBy, SortOrder


def _user(login):
    u = MagicMock()
    u.login = login
    return u


def _review(review_id, login, state, minutes=0):
    r = MagicMock()
    r.id = review_id
    r.user = _user(login)
    r.state = state
    r.submitted_at = at(minutes)
    return r


def _review_comment(comment_id, login, minutes, reply_to=None, path="a.py", line=10, original_line=None):
    c = MagicMock()
    c.id = comment_id
    c.user = _user(login)
    c.created_at = at(minutes)
    c.body = "nit"
    c.in_reply_to_id = reply_to
    c.path = path
    c.line = line
    c.original_line = original_line
    return c


def _gh_pr(draft=False, merged=False, state="open"):
    pr = MagicMock()
    pr.html_url = "https://github.com/acme/api/pull/7"
    pr.number = 7
    pr.base.repo.id = 42
    pr.base.ref = "main"
    pr.head.ref = "feature"
    pr.title = "Add thing"
    pr.body = None
    pr.user = _user("alice")
    pr.labels = [MagicMock(), MagicMock()]
    pr.labels[0].name = "bug"
    pr.labels[1].name = "api"
    pr.assignees = [_user("bob")]
    pr.draft = draft
    pr.merged = merged
    pr.state = state
    pr.created_at = at(0)
    pr.closed_at = at(10)
    pr.merged_at = at(9)
    pr.updated_at = at(10)
    return pr


# ---------------------------------------------------------------------------
# Search query
# ---------------------------------------------------------------------------


class TestBuildSearchQuery:
    def test_drafts_excluded_without_state(self):
        assert build_search_query(ListRequest(), "involves:@me") == "is:pr involves:@me draft:false"

    def test_draft_state_lists_only_drafts(self):
        query = build_search_query(ListRequest(state=State.DRAFT), "")
        assert query == "is:pr is:open draft:true"

    def test_open_state_excludes_drafts(self):
        assert "draft:false" in build_search_query(ListRequest(state=State.OPEN), "")

    def test_merged_and_closed_are_distinct(self):
        assert "is:merged" in build_search_query(ListRequest(state=State.MERGED), "")
        closed = build_search_query(ListRequest(state=State.CLOSED), "")
        assert "is:closed" in closed
        assert "is:unmerged" in closed

    def test_labels_included_and_excluded(self):
        request = ListRequest(labels=Filter.of(["bug"], ["needs review"]))
        query = build_search_query(request, "org:acme")
        assert "label:bug" in query
        assert '-label:"needs review"' in query
        assert query.startswith("is:pr org:acme")


class TestBuildSortParams:
    def test_created_desc(self):
        request = ListRequest(sort=Sort(by=SortBy.CREATED_AT, order=SortOrder.DESC))
        assert build_sort_params(request) == {"sort": "created", "order": "desc"}

    def test_title_not_sent(self):
        request = ListRequest(sort=Sort(by=SortBy.TITLE, order=SortOrder.ASC))
        assert build_sort_params(request) == {"order": "asc"}

    def test_nothing_set(self):
        assert build_sort_params(ListRequest()) == {}


# ---------------------------------------------------------------------------
# Model conversion
# ---------------------------------------------------------------------------


class TestToPullRequest:
    def test_fields(self):
        item = to_pull_request(_gh_pr())
        assert item.url == "https://github.com/acme/api/pull/7"
        assert item.project.id == "42"
        assert item.author == User("alice")
        assert item.labels == ("bug", "api")
        assert item.assignees == (User("bob"),)
        assert item.source_branch == "feature"
        assert item.target_branch == "main"
        assert item.body == ""
        assert item.state == State.OPEN

    def test_draft(self):
        assert to_pull_request(_gh_pr(draft=True)).state == State.DRAFT

    def test_merged_uses_merge_time(self):
        item = to_pull_request(_gh_pr(merged=True, state="closed"))
        assert item.state == State.MERGED
        assert item.closed_at == at(9)

    def test_closed_uses_close_time(self):
        item = to_pull_request(_gh_pr(state="closed"))
        assert item.state == State.CLOSED
        assert item.closed_at == at(10)

    def test_deleted_user_becomes_ghost(self):
        assert to_user(None) == User("ghost")


def test_to_project():
    repo = MagicMock()
    repo.id = 42
    repo.html_url = "https://github.com/acme/api"
    repo.name = "api"
    repo.full_name = "acme/api"
    project = to_project(repo)
    assert project.id == "42"
    assert project.full_path == "acme/api"


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


class TestGetRequiredApprovals:
    def test_reads_branch_protection(self):
        repo = MagicMock()
        repo.get_branch.return_value.get_required_pull_request_reviews.return_value.required_approving_review_count = 2
        assert get_required_approvals(repo, "main") == 2
        repo.get_branch.assert_called_once_with("main")

    def test_unprotected_branch_requires_nothing(self):
        repo = MagicMock()
        repo.get_branch.return_value.get_required_pull_request_reviews.side_effect = GithubException(404, {}, {})
        assert get_required_approvals(repo, "main") == 0

    def test_forbidden_requires_nothing_and_warns(self, caplog):
        repo = MagicMock()
        repo.full_name = "acme/api"
        repo.get_branch.side_effect = GithubException(403, {}, {})
        assert get_required_approvals(repo, "main") == 0
        assert "acme/api" in caplog.text


class TestGetApprovals:
    def test_latest_review_per_user_wins(self):
        pr = MagicMock()
        pr.requested_reviewers = [_user("me")]
        pr.get_reviews.return_value = [
            _review(1, "bob", "APPROVED"),
            _review(2, "carol", "CHANGES_REQUESTED"),
            _review(3, "carol", "APPROVED"),
            _review(4, "dave", "APPROVED"),
            _review(5, "dave", "DISMISSED"),
            _review(6, "erin", "COMMENTED"),
        ]

        approvals = get_approvals(pr, required=2, review_decision="APPROVED")

        assert set(approvals.by) == {User("bob"), User("carol")}
        assert approvals.requested_from == (User("me"),)
        assert approvals.required == 2
        assert approvals.satisfies_rules

    @pytest.mark.parametrize(
        "decision,satisfied",
        [
            ("APPROVED", True),
            (None, True),
            ("REVIEW_REQUIRED", False),
            ("CHANGES_REQUESTED", False),
        ],
    )
    def test_satisfaction_follows_review_decision(self, decision, satisfied):
        pr = MagicMock()
        pr.requested_reviewers = []
        pr.get_reviews.return_value = [_review(1, "bob", "APPROVED")]
        assert get_approvals(pr, required=1, review_decision=decision).satisfies_rules is satisfied

    def test_unreadable_protection_with_no_approvals_is_not_satisfied(self):
        repo = MagicMock()
        repo.get_branch.return_value.get_required_pull_request_reviews.side_effect = GithubException(404, {}, {})
        pr = MagicMock()
        pr.requested_reviewers = []
        pr.get_reviews.return_value = []

        approvals = get_approvals(pr, get_required_approvals(repo, "main"), review_decision="REVIEW_REQUIRED")

        assert approvals.required == 0
        assert approvals.by == ()
        assert not approvals.satisfies_rules


class TestGetReviewDecision:
    def test_reads_decision(self):
        requester = MagicMock()
        requester.graphql_query.return_value = (
            {},
            {"data": {"repository": {"pullRequest": {"reviewDecision": "REVIEW_REQUIRED"}}}},
        )

        assert get_review_decision(requester, "acme", "api", 7) == "REVIEW_REQUIRED"
        variables = requester.graphql_query.call_args.args[1]
        assert variables == {"owner": "acme", "repo": "api", "pr": 7}

    def test_null_when_no_review_required(self):
        requester = MagicMock()
        requester.graphql_query.return_value = ({}, {"repository": {"pullRequest": {"reviewDecision": None}}})
        assert get_review_decision(requester, "acme", "api", 7) is None


# ---------------------------------------------------------------------------
# Thread resolution
# ---------------------------------------------------------------------------


def _threads_page(nodes, has_next=False, cursor=None):
    return {
        "data": {
            "repository": {
                "pullRequest": {
                    "reviewThreads": {
                        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                        "nodes": nodes,
                    }
                }
            }
        }
    }


def _thread_node(root_id, resolved, resolver="bob"):
    return {
        "isResolved": resolved,
        "resolvedBy": {"login": resolver} if resolved else None,
        "comments": {"nodes": [{"databaseId": root_id}]},
    }


class TestGetThreadResolutions:
    def test_maps_resolved_roots_to_resolver(self):
        requester = MagicMock()
        requester.graphql_query.return_value = ({}, _threads_page([_thread_node(1, True), _thread_node(2, False)]))

        assert get_thread_resolutions(requester, "acme", "api", 7) == {1: User("bob")}

    def test_follows_cursor(self):
        requester = MagicMock()
        requester.graphql_query.side_effect = [
            ({}, _threads_page([_thread_node(1, True)], has_next=True, cursor="c1")),
            ({}, _threads_page([_thread_node(2, True, resolver="carol")])),
        ]

        result = get_thread_resolutions(requester, "acme", "api", 7)

        assert result == {1: User("bob"), 2: User("carol")}
        second_variables = requester.graphql_query.call_args_list[1].args[1]
        assert second_variables["cursor"] == "c1"


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


class TestGetNotes:
    def _pr(self, review_comments=(), issue_comments=(), reviews=()):
        pr = MagicMock()
        pr.get_review_comments.return_value = list(review_comments)
        pr.get_issue_comments.return_value = list(issue_comments)
        pr.get_reviews.return_value = list(reviews)
        return pr

    def test_replies_share_root_position(self):
        pr = self._pr(
            review_comments=[
                _review_comment(1, "x", 1, path="a.py", line=10),
                _review_comment(2, "y", 2, reply_to=1, path="a.py", line=12),
            ]
        )
        notes = get_notes(pr, {})
        assert {n.thread_key for n in notes} == {"a.py:10"}
        assert all(n.resolvable for n in notes)
        assert not any(n.resolved for n in notes)

    def test_outdated_comment_falls_back_to_original_line(self):
        pr = self._pr(review_comments=[_review_comment(1, "x", 1, line=None, original_line=4)])
        assert get_notes(pr, {})[0].thread_key == "a.py:4"

    def test_resolution_carried_by_last_comment(self):
        pr = self._pr(
            review_comments=[
                _review_comment(1, "x", 1),
                _review_comment(2, "y", 2, reply_to=1),
            ]
        )
        notes = {n.id: n for n in get_notes(pr, {1: User("x")})}
        assert not notes["rc:1"].resolved
        assert notes["rc:2"].resolved
        assert notes["rc:2"].resolved_by == User("x")

    def test_issue_comments_are_plain_notes(self):
        comment = MagicMock(id=9, user=_user("bob"), created_at=at(1), body="thanks")
        notes = get_notes(self._pr(issue_comments=[comment]), {})
        assert notes[0].id == "ic:9"
        assert not notes[0].resolvable

    def test_reviews_become_approval_notes(self):
        reviews = [_review(1, "bob", "APPROVED", 1), _review(2, "bob", "DISMISSED", 2), _review(3, "c", "COMMENTED")]
        notes = get_notes(self._pr(reviews=reviews), {})
        assert [(n.id, n.body) for n in notes] == [("rv:1", APPROVED_BODY), ("rv:2", UNAPPROVED_BODY)]

    def test_notes_feed_history_and_threads(self):
        pr = self._pr(
            review_comments=[
                _review_comment(1, "x", 1),
                _review_comment(2, "y", 2, reply_to=1),
            ],
            reviews=[_review(3, "y", "APPROVED", 3)],
        )

        history = assemble_history(get_notes(pr, {1: User("x")}))
        threads, diagnostics = build_threads(history)

        assert [e.kind for e in history] == [
            EventKind.COMMENTED,
            EventKind.REPLIED,
            EventKind.THREAD_RESOLVED,
            EventKind.APPROVED,
        ]
        assert diagnostics == []
        assert threads[0].resolved
        assert [c.author for c in threads[0].comments] == [User("x"), User("y")]
