"""
Iteration over chunked (paginated) collections.

The server returns collections in pages; each page carries its items under
a list field and, unless it is the last page, a link to the next page under
a next field. PaginatedIterator hides the chunking and hands out the items
one by one, fetching pages lazily.

About duplicate filtering: the NumerousApp server can report an item twice
when it was recorded nearly simultaneously with a page fetch, in which case
it shows up at the end of one page and again at the start of the next. The
iterator therefore remembers the keys of the previous page and drops any
item of the current page whose key it has already seen there. Only adjacent
pages are compared, and repeats inside a single page are left alone.

Example:
    >>> pager = PaginatedIterator(executor)
    >>> ctx = METRIC_APIS["events"].context("GET", metricId="5432")
    >>> for event in pager.iterate(ctx):
    ...     print(event["value"])
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterator
from typing import Any, Final

from numerousapp._api import RequestContext
from numerousapp._executor import RequestExecutor

logger = logging.getLogger(__name__)


class _Stop:
    def __repr__(self) -> str:
        return "STOP"


# Return this from a for_each() callback to end the iteration early.
STOP: Final = _Stop()


class DuplicateFilterWindow:
    """
    Two generations of seen item keys: the previous page and the current one.

    Example:
        >>> window = DuplicateFilterWindow()
        >>> window.slide(); window.admit(1), window.admit(2)
        (True, True)
        >>> window.slide(); window.admit(2), window.admit(3)
        (False, True)
    """

    def __init__(self) -> None:
        self.previous: set[Hashable] = set()
        self.current: set[Hashable] = set()

    def slide(self) -> None:
        """Start a new page: the current generation becomes the previous one."""
        self.previous = self.current
        self.current = set()

    def admit(self, key: Hashable) -> bool:
        """Return False if `key` was seen on the previous page, else record it and return True."""
        if key in self.previous:
            return False
        self.current.add(key)
        return True


class PaginatedIterator:
    """
    Drives repeated executor calls over a collection's pages.

    Args:
        executor: Executor used to fetch each page.
        filter_duplicates: Global switch for page-boundary duplicate filtering.
            Only collections whose context declares a dup_filter field are filtered.
    """

    def __init__(self, executor: RequestExecutor, filter_duplicates: bool = True):
        assert executor is not None, "executor cannot be None."
        self.executor = executor
        self.filter_duplicates = filter_duplicates

    def iterate(self, context: RequestContext) -> Iterator[Any]:
        """
        Yield every item of the collection, in server order.

        Pages are fetched lazily, so breaking out of the loop stops fetching.
        Errors raised while fetching a page propagate unchanged; items already
        yielded stay yielded.

        Raises:
            NumerousError: From the executor, on any failed page fetch.
        """
        assert context.list_field, f"Not a collection context: {context.base_path}"

        stats = self.executor.statistics
        window = DuplicateFilterWindow() if (self.filter_duplicates and context.dup_filter) else None
        next_url: str | None = context.base_path
        first_page = True

        while next_url:
            page = self.executor.execute(context, url=next_url)

            if first_page:
                stats.first_chunks += 1
                first_page = False
            else:
                stats.additional_chunks += 1

            if window is not None:
                window.slide()

            items = page.get(context.list_field) if isinstance(page, dict) else None
            next_url = page.get(context.next_field) if (isinstance(page, dict) and context.next_field) else None

            for item in items or ():
                if window is not None and not window.admit(_dedup_key(item, context.dup_filter)):
                    stats.duplicates_filtered += 1
                    logger.debug(f"Filtered duplicate {context.dup_filter}={item.get(context.dup_filter)!r}")
                    continue
                yield item

    def for_each(self, context: RequestContext, on_item: Callable[[Any], Any] | None) -> None:
        """
        Call `on_item` for every item of the collection.

        Does nothing when no callback is supplied. Returning STOP from the
        callback ends the iteration without fetching more pages.
        """
        if on_item is None:
            return
        for item in self.iterate(context):
            if on_item(item) is STOP:
                return


def _dedup_key(item: Any, field_name: str | None) -> Hashable:
    value = item.get(field_name) if isinstance(item, dict) else None
    # items without a usable key are never treated as duplicates
    if value is None or not isinstance(value, Hashable):
        return object()
    return value
