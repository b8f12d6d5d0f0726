"""Query types for listing pull requests.

A Query has two halves:
  - ``request``: criteria the remote system can evaluate while listing
    (state, labels, sort order, pagination)
  - everything else: criteria that need the fully assembled pull request
    and are applied afterwards by ``prfeed_core.filters``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from prfeed_core.errors import ValidationError
from prfeed_core.models import State


class TriState(Enum):
    """An optional boolean criterion: UNSET means "do not filter"."""

    UNSET = "unset"
    TRUE = "true"
    FALSE = "false"

    @classmethod
    def parse(cls, value: str | bool | None) -> TriState:
        if value is None or value == "":
            return cls.UNSET
        if isinstance(value, bool):
            return cls.TRUE if value else cls.FALSE
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid tri-state value: {value!r}. Choose 'true', 'false' or leave empty.") from None

    def negate(self) -> TriState:
        if self is TriState.TRUE:
            return TriState.FALSE
        if self is TriState.FALSE:
            return TriState.TRUE
        return TriState.UNSET

    def matches(self, value: bool) -> bool:
        """Compare against ``value``. Only meaningful when set."""
        if self is TriState.UNSET:
            raise ValueError("An unset criterion has nothing to compare against.")
        return value is (self is TriState.TRUE)


@dataclass(frozen=True)
class Filter:
    """Include/exclude sets for one dimension. Empty sets are not applied."""

    include: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()

    @classmethod
    def of(cls, include=(), exclude=()) -> Filter:
        return cls(include=frozenset(include or ()), exclude=frozenset(exclude or ()))

    def empty(self) -> bool:
        return not self.include and not self.exclude


class SortBy(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Sort:
    by: SortBy | None = None
    order: SortOrder | None = None


DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 20


@dataclass(frozen=True)
class Pagination:
    page: int = 0
    per_page: int = 0

    def empty(self) -> bool:
        return self.page == 0 and self.per_page == 0

    def explicit(self) -> bool:
        """Both bounds given: the listing is capped to a single page."""
        return self.page != 0 and self.per_page != 0

    def resolved(self) -> Pagination:
        return Pagination(page=self.page or DEFAULT_PAGE, per_page=self.per_page or DEFAULT_PER_PAGE)


@dataclass(frozen=True)
class ListRequest:
    """Criteria passed through to the remote listing call."""

    state: State | None = None
    labels: Filter = Filter()
    sort: Sort = Sort()
    pagination: Pagination = Pagination()


@dataclass(frozen=True)
class Query:
    request: ListRequest = field(default_factory=ListRequest)
    approved_by_me: TriState = TriState.UNSET
    without_my_unresolved_threads: bool = False
    satisfies_approval_rules: TriState = TriState.UNSET
    authors: Filter = Filter()
    project_paths: Filter = Filter()


def validate_query(query: Query) -> None:
    """Reject queries that would scan every pull request in scope.

    At least one criterion the remote side can narrow the listing by must
    be present before an unbounded listing is attempted.
    """
    filters = {
        "state": query.request.state is not None,
        "labels": not query.request.labels.empty(),
        "authors": not query.authors.empty(),
        "pagination": query.request.pagination.explicit(),
    }
    if any(filters.values()):
        return
    raise ValidationError(
        f"at least one backend-side filter must be present, available filters: {', '.join(filters)}"
    )
