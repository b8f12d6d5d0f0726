"""Error types raised by the listing pipeline.

Callers catch ``PRFeedError`` for anything the pipeline reports. The
subclasses let them tell a remote failure apart from a rejected query or
a listing the caller gave up on. The underlying exception is always
chained as ``__cause__`` and kept on ``cause`` where one exists.
"""

from __future__ import annotations


class PRFeedError(Exception):
    """Base class for all prfeed errors."""


class TransportError(PRFeedError):
    """A call to the remote system failed."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"{operation}: {cause}")
        self.operation = operation
        self.cause = cause


class PageError(PRFeedError):
    """Listing failed while fetching a specific page."""

    def __init__(self, page: int, cause: BaseException):
        super().__init__(f"at page {page}: {cause}")
        self.page = page
        self.cause = cause


class ItemError(PRFeedError):
    """Assembling one pull request failed."""

    def __init__(self, url: str, cause: BaseException):
        super().__init__(f"load pull request {url}: {cause}")
        self.url = url
        self.cause = cause


class ValidationError(PRFeedError):
    """The query was rejected before any remote call was made."""


class ListingCancelled(PRFeedError):
    """The caller's deadline expired before the listing completed."""
