"""
Cursor pagination over VPC listing calls.

Listing calls take a ``start`` cursor and return a Page whose
``next_start`` names the following page. The helpers here walk those
pages lazily so a name lookup stops as soon as it finds a match and a
large collection is never held in memory all at once.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional, Set, TypeVar

from .errors import ProviderError
from .models import Page

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageFetcher = Callable[[Optional[str]], Page]


def iter_pages(fetch: PageFetcher) -> Iterator[Page]:
    """Yield pages from *fetch* until the cloud reports no further page.

    Each call starts again from the first page.

    Args:
        fetch: Called with the cursor of the page to fetch (None first).

    Yields:
        Page objects in listing order.

    Raises:
        ProviderError: If the cloud hands back a cursor it already returned.
    """
    start: Optional[str] = None
    seen: Set[str] = set()
    while True:
        page = fetch(start)
        yield page
        if not page.next_start:
            return
        if page.next_start in seen:
            logger.warning("Listing returned cursor %s twice, stopping", page.next_start)
            raise ProviderError(f"pagination cursor {page.next_start} repeated")
        seen.add(page.next_start)
        start = page.next_start


def iter_items(fetch: PageFetcher) -> Iterator[T]:
    """Yield every item of every page, in listing order."""
    for page in iter_pages(fetch):
        yield from page.items


def find_by_name(fetch: PageFetcher, name: str) -> Optional[T]:
    """Return the first item whose name equals *name* exactly.

    Args:
        fetch: Page fetcher for the collection to search.
        name: Exact name to match (no prefix or case folding).

    Returns:
        The first matching item, or None once the listing is exhausted.
    """
    for item in iter_items(fetch):
        if getattr(item, "name", None) == name:
            return item
    return None

