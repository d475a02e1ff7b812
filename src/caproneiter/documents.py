"""
CaproneIter Documents — Flatten Pages into Documents
====================================================

Turns a page sequence into a sequence of hit _source payloads, in server
order. Leaving the document loop early clears the underlying cursor
before the generator finishes closing.
"""

from typing import Any, AsyncIterator, Iterator

from .paginator import AsyncPaginator, Paginator


def iter_documents(paginator: Paginator) -> Iterator[Any]:
    """
    Yield every document of every page.

    Args:
        paginator: Page sequence to flatten (consumed by this call)

    Example:
        for doc in iter_documents(Paginator(transport, request)):
            print(doc["title"])
    """
    try:
        for page in paginator:
            for hit in page.hits:
                yield hit.get("_source")
    finally:
        paginator.clear()


async def aiter_documents(paginator: AsyncPaginator) -> AsyncIterator[Any]:
    """Async variant of iter_documents."""
    try:
        async for page in paginator:
            for hit in page.hits:
                yield hit.get("_source")
    finally:
        await paginator.clear()
