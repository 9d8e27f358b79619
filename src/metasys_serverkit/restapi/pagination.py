"""Lazy pagination over Metasys collection resources.

A collection is fetched one page at a time: the items of a page are yielded
in order and the ``next`` address supplied by the server is followed until
the server stops providing one.
"""

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any, TypeAlias

import httpx
import structlog

from .types import Page

logger = structlog.get_logger(__name__)

Fetcher: TypeAlias = Callable[[str, Mapping[str, Any] | None], Awaitable[Any]]


class PagedCollection:
    """Lazily produced sequence of the items in a collection resource.

    No request is made until the first item is requested, and the next page
    is only fetched once every item of the current page has been consumed.
    Nothing is cached: each ``async for`` starts again from the first page.

    The server reports an empty collection with a 404, so a 404 ends the
    sequence instead of raising. Any other error is raised from the page
    fetch that hit it, possibly after earlier items were already yielded.
    """

    def __init__(
        self,
        fetch: Fetcher,
        url: str,
        params: Mapping[str, Any] | None = None,
    ):
        """Initialize the collection.

        Args:
            fetch: Coroutine function taking ``(url, params)`` and returning
                the parsed JSON body of the page.
            url: Address of the first page.
            params: Query parameters, sent with the first page only.
        """
        self._fetch = fetch
        self.url = url
        self.params = dict(params) if params else None

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.url!r}, params={self.params!r})"

    async def _iterate(self) -> AsyncIterator[Any]:
        url: str | None = self.url
        params = self.params
        page_number = 0
        while url:
            try:
                data = await self._fetch(url, params)
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code != httpx.codes.NOT_FOUND:
                    raise
                # A 404 past the first page also ends the sequence
                logger.debug(
                    "Collection page not found, ending sequence",
                    url=url,
                    page=page_number,
                )
                return

            page = Page.model_validate(data)
            logger.debug(
                "Fetched collection page",
                url=url,
                page=page_number,
                item_count=len(page.items),
                has_next=page.next is not None,
            )
            url = page.next
            params = None
            page_number += 1

            for item in page.items:
                yield item

    async def to_list(self) -> list[Any]:
        """Fetch every remaining page and return all items in order."""
        return [item async for item in self]
