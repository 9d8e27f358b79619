"""Helpers for consuming async sequences.

These work on any async iterable, including the paged collections returned
by the REST client. Everything here is lazy except :func:`to_list`, and all
filtering happens client side: use query parameters to reduce what the
server sends.
"""

from collections.abc import AsyncIterable, AsyncIterator, Callable
from contextlib import aclosing, nullcontext
from typing import TypeVar

T = TypeVar("T")
U = TypeVar("U")

Predicate = Callable[[T], bool]


async def to_list(sequence: AsyncIterable[T]) -> list[T]:
    """Drain the sequence and return its items in order."""
    return [item async for item in sequence]


async def filter_items(
    sequence: AsyncIterable[T],
    predicate: Predicate[T],
) -> AsyncIterator[T]:
    """Yield only the items for which predicate returns True."""
    async for item in sequence:
        if predicate(item):
            yield item


async def first(
    sequence: AsyncIterable[T],
    predicate: Predicate[T] | None = None,
) -> T | None:
    """Return the first item matching predicate, or None if there is none.

    Iteration stops at the match, so pages after it are never fetched and
    cannot fail. Sources that support ``aclose`` are closed on return.
    Without a predicate the first item is returned.
    """
    iterator = aiter(sequence)
    closing = aclosing(iterator) if hasattr(iterator, "aclose") else nullcontext(iterator)
    async with closing:
        async for item in iterator:
            if predicate is None or predicate(item):
                return item
    return None


async def map_items(
    sequence: AsyncIterable[T],
    transform: Callable[[T], U],
) -> AsyncIterator[U]:
    """Yield transform(item) for every item, in order."""
    async for item in sequence:
        yield transform(item)


async def chain(*sequences: AsyncIterable[T]) -> AsyncIterator[T]:
    """Yield the items of each sequence in turn."""
    for sequence in sequences:
        async for item in sequence:
            yield item
