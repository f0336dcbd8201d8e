"""
sap_b1sl.odata.paging - Continuation-link pagination
=====================================================

Follows ``@odata.nextLink`` continuation links until the server stops
sending one, yielding the ``value`` array of every page in server order.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from sap_b1sl.core.config import RequestOptions


Fetch = Callable[[str, RequestOptions], Awaitable[Any]]

# v2 uses the annotation form; v1 answers with the bare key
NEXT_LINK_KEYS = ("@odata.nextLink", "odata.nextLink")


def extract_next_link(payload: Any) -> Optional[str]:
    """Continuation link of a list response, None on the last page."""
    if not isinstance(payload, dict):
        return None
    for key in NEXT_LINK_KEYS:
        link = payload.get(key)
        if link:
            return link
    return None


def extract_values(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    return payload.get("value") or []


async def iterate_pages(
    fetch: Fetch,
    query: str,
    options: Optional[RequestOptions] = None,
    *,
    max_pages: Optional[int] = None,
) -> AsyncIterator[List[Dict[str, Any]]]:
    """
    Iterate through the pages of a list query.

    The first request uses ``options`` as given. Continuation links are
    fetched verbatim with the same headers and timeout; query parameters
    are not re-sent because the server already encoded them in the link.

    Parameters
    ----------
    fetch : callable
        Coroutine function ``fetch(target, options)`` returning the decoded
        response body
    query : str
        Initial query, e.g. "Items?$select=ItemCode,ItemName"
    options : RequestOptions, optional
        Per-call options
    max_pages : int, optional
        Maximum number of pages to fetch, at least 1

    Yields
    ------
    list of dict
        The ``value`` array of each page

    Raises
    ------
    ValueError
        If ``max_pages`` is below 1. Raised before any request is made.
    """
    if max_pages is not None and int(max_pages) < 1:
        raise ValueError(f"max_pages must be at least 1, got {max_pages}")
    opts = options or RequestOptions()
    page = await fetch(query, opts)
    yield extract_values(page)
    fetched = 1

    follow_opts = opts.without_params()
    next_link = extract_next_link(page)
    while next_link:
        if max_pages is not None and fetched >= int(max_pages):
            return
        page = await fetch(next_link, follow_opts)
        yield extract_values(page)
        fetched += 1
        next_link = extract_next_link(page)


async def collect_pages(pages: AsyncIterator[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Concatenate pages into one list, preserving order and duplicates."""
    out: List[Dict[str, Any]] = []
    async for page in pages:
        out.extend(page)
    return out
