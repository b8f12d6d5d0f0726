"""Page-by-page accumulation for listing endpoints."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from prfeed_core.errors import PageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def list_all(start_page: int, fetch_page: Callable[[int], Awaitable[list[T]]]) -> list[T]:
    """Fetch pages starting at ``start_page`` until one comes back empty.

    Any failure aborts the whole listing with a PageError naming the page
    that failed; nothing fetched so far is returned. Cancellation is not
    wrapped and propagates as-is.
    """
    result: list[T] = []
    page = start_page
    while True:
        try:
            nodes = await fetch_page(page)
        except Exception as e:
            raise PageError(page, e) from e

        if not nodes:
            break

        logger.debug("Fetched %d item(s) at page %d", len(nodes), page)
        result.extend(nodes)
        page += 1

    return result
