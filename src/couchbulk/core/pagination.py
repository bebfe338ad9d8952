"""
Cursor pagination.

Walks a large result set page by page using a "start after the last seen
key" cursor instead of server-side skip, which gets slower the further in
it goes.
"""

import json
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

# High-valued character appended to a cursor key so the next page starts
# strictly after it. Keys containing this character are not supported.
SENTINEL = "\ufff0"

Page = List[Any]
FetchPage = Callable[[Dict[str, Any]], Page]
OnPage = Callable[[Page], None]
CursorKey = Union[str, Callable[[Any], Any]]


def make_cursor(key: Any) -> str:
    """
    Build the ``startkey`` value that resumes after ``key``.

    Args:
        key: Natural key of the last item seen

    Returns:
        JSON string literal of the key followed by the sentinel character
    """
    return json.dumps(f"{key}{SENTINEL}")


def iter_pages(
    fetch_page: FetchPage,
    page_size: int,
    options: Optional[Dict[str, Any]] = None,
    cursor_field: CursorKey = "_id",
) -> Iterator[Page]:
    """
    Lazily yield every non-empty page of a result set.

    An empty page is the only stop signal, so a final full page is always
    followed by one more fetch that comes back empty. A fetch function that
    never returns an empty page makes this loop forever.

    Args:
        fetch_page: Called with the query options for one page, returns its items
        page_size: Number of items requested per page (sent as ``limit``)
        options: Caller query options; copied, never mutated
        cursor_field: Field of the last item used to build the next cursor, or
            a function returning the key of an item

    Yields:
        Each page in order
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")

    options = dict(options or {})
    cursor = None
    pages = 0
    if callable(cursor_field):
        key_of = cursor_field
    else:
        key_of = lambda item: item[cursor_field]

    while True:
        page_options = {**options, "limit": page_size}
        if cursor is not None:
            page_options["startkey"] = cursor

        page = fetch_page(page_options)
        if not page:
            break

        pages += 1
        logger.debug("page_fetched", page=pages, size=len(page), startkey=cursor)
        # taken before yielding; the consumer may mutate the page
        cursor = make_cursor(key_of(page[-1]))
        yield page

    logger.debug("pagination_done", pages=pages)


def paginate(
    fetch_page: FetchPage,
    page_size: int,
    options: Optional[Dict[str, Any]] = None,
    on_page: Optional[OnPage] = None,
    cursor_field: CursorKey = "_id",
) -> List[Any]:
    """
    Fetch a whole result set page by page.

    If ``on_page`` is given it is called with each page and nothing is kept,
    so memory stays bounded by one page. Otherwise every item is collected
    and returned. Raising from ``on_page`` stops the pagination before the
    next request.

    Returns:
        All items in order, or an empty list in streaming mode
    """
    items: List[Any] = []
    for page in iter_pages(fetch_page, page_size, options, cursor_field):
        if on_page is not None:
            on_page(page)
        else:
            items.extend(page)
    return items
