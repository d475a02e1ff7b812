"""
CaproneIter Paginator — Lazy, Retry-Aware, Cancelable Page Sequences
====================================================================

A Paginator walks one cursor from its first page to its last and hands
each page to the caller as soon as it arrives:

    IDLE → AWAITING_PAGE → YIELDING → AWAITING_PAGE → ... → DRAINING → CLOSED

Guarantees:
    - one transport call in flight at a time, no prefetch
    - pages in server order, none yielded twice, empty pages never yielded
    - every page fetch goes through the 429 retry policy
    - the cursor is released on exhaustion (per clear_on_exhaustion),
      explicit clear(), abandoned iteration, and errors; release failures
      are logged and never replace the error being raised

Usage:
    with Paginator(transport, PageRequest("corpus", size=500)) as pages:
        for page in pages:
            handle(page.documents)
"""

import asyncio
import logging
import time
from dataclasses import replace
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from .cursor import CursorState, FetchRequest, PageStep, make_adapter
from .exceptions import CaproneIterError
from .request import PageOptions, PageRequest
from .retry import async_fetch_with_retry, fetch_with_retry
from .transport import AsyncTransport, ResponseEnvelope, Transport, TransportOptions

logger = logging.getLogger(__name__)


class PaginationState(Enum):
    IDLE = "idle"
    AWAITING_PAGE = "awaiting_page"
    YIELDING = "yielding"
    DRAINING = "draining"
    CLOSED = "closed"


class _BasePage:
    def __init__(self, envelope: ResponseEnvelope, hits: List[Dict[str, Any]], is_exhausted: bool):
        self._envelope = envelope
        self.hits = hits
        self.is_exhausted = is_exhausted

    @property
    def body(self) -> Any:
        return self._envelope.body

    @property
    def status_code(self) -> int:
        return self._envelope.status_code

    @property
    def headers(self) -> Dict[str, str]:
        return self._envelope.headers

    @property
    def warnings(self) -> List[str]:
        return self._envelope.warnings

    @property
    def documents(self) -> List[Any]:
        """The _source of every hit on this page."""
        return [hit.get("_source") for hit in self.hits]

    def __len__(self) -> int:
        return len(self.hits)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} hits={len(self.hits)} exhausted={self.is_exhausted}>"


class Page(_BasePage):
    """One page of a Paginator. clear() stops the whole sequence."""

    def __init__(self, envelope, hits, is_exhausted, paginator: "Paginator"):
        super().__init__(envelope, hits, is_exhausted)
        self._paginator = paginator

    def clear(self) -> None:
        self._paginator.clear()


class AsyncPage(_BasePage):
    """One page of an AsyncPaginator. ``await page.clear()`` stops the sequence."""

    def __init__(self, envelope, hits, is_exhausted, paginator: "AsyncPaginator"):
        super().__init__(envelope, hits, is_exhausted)
        self._paginator = paginator

    async def clear(self) -> None:
        await self._paginator.clear()


class _PaginatorBase:
    """State shared by the sync and async engines; no I/O happens here."""

    def __init__(self, request: PageRequest, options: Optional[PageOptions] = None):
        self.request = request
        self.options = options or PageOptions()
        self._adapter = make_adapter(request, self.options)
        self._policy = self.options.retry_policy()
        self._state = PaginationState.IDLE
        self._cursor: Optional[CursorState] = None
        self._exhausted = False

    @property
    def state(self) -> PaginationState:
        return self._state

    @property
    def cursor(self) -> Optional[CursorState]:
        return self._cursor

    @property
    def kind(self) -> str:
        """Cursor kind: "scroll" or "search_after"."""
        return self._adapter.kind

    @property
    def closed(self) -> bool:
        return self._state in (PaginationState.DRAINING, PaginationState.CLOSED)

    def _pending_fetch(self) -> Optional[Tuple[FetchRequest, CursorState]]:
        if self._state is PaginationState.IDLE:
            return self._adapter.open()
        if self._state is PaginationState.YIELDING and not self._exhausted:
            return self._adapter.advance(self._cursor), self._cursor
        return None

    def _transport_options(self, fetch: FetchRequest) -> TransportOptions:
        options = self.options.transport_options()
        if not fetch.ignore:
            return options
        return replace(options, ignore=tuple(sorted(set(options.ignore) | set(fetch.ignore))))

    def _accept(self, envelope: ResponseEnvelope, cursor: CursorState) -> Optional[PageStep]:
        step = self._adapter.step(envelope.body, cursor)
        self._cursor = step.cursor
        logger.debug(
            "Fetched %s page: %d hits (status %d)",
            self.kind, len(step.hits), envelope.status_code
        )
        if not step.hits:
            return None
        self._exhausted = step.exhausted
        self._state = PaginationState.YIELDING
        return step

    def _release_request(self) -> Optional[FetchRequest]:
        if not self._adapter.requires_release:
            return None
        return self._adapter.release(self._cursor)

    def _log_release_failure(self, err: CaproneIterError) -> None:
        logger.warning("Failed to release %s cursor: %s", self.kind, err)


class Paginator(_PaginatorBase):
    """
    Synchronous page sequence over a Transport.

    Args:
        transport: Transport executing the requests
        request: What to search
        options: How to paginate (scroll vs search_after, retries, ...)
        sleep: Backoff sleep, injectable for tests

    Iteration is single-pass. Breaking out of a ``for`` loop, leaving a
    ``with`` block, or an error all release the cursor.
    """

    def __init__(
        self,
        transport: Transport,
        request: PageRequest,
        options: Optional[PageOptions] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        super().__init__(request, options)
        self._transport = transport
        self._sleep = sleep

    def __iter__(self) -> Iterator[Page]:
        try:
            while True:
                page = self._fetch_next()
                if page is None:
                    return
                yield page
        finally:
            self.clear()

    def _send(self, fetch: FetchRequest) -> ResponseEnvelope:
        return self._transport.request(
            fetch.method,
            fetch.path,
            querystring=fetch.querystring,
            body=fetch.body,
            options=self._transport_options(fetch)
        )

    def _fetch_next(self) -> Optional[Page]:
        if self.closed:
            return None
        pending = self._pending_fetch()
        if pending is None:
            self._finish()
            return None

        fetch, cursor = pending
        self._state = PaginationState.AWAITING_PAGE
        envelope = fetch_with_retry(lambda: self._send(fetch), self._policy, self._sleep)
        step = self._accept(envelope, cursor)
        if step is None:
            self._finish()
            return None
        return Page(envelope, step.hits, self._exhausted, self)

    def _finish(self) -> None:
        if self._adapter.clear_on_exhaustion:
            self.clear()
        else:
            self._state = PaginationState.CLOSED

    def clear(self) -> None:
        """Stop iterating and release the cursor. Safe to call repeatedly."""
        if self.closed:
            return
        self._state = PaginationState.DRAINING
        try:
            fetch = self._release_request()
            if fetch is not None:
                self._send(fetch)
                logger.debug("Released %s cursor", self.kind)
        except CaproneIterError as err:
            self._log_release_failure(err)
        finally:
            self._state = PaginationState.CLOSED

    close = clear

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.clear()


class AsyncPaginator(_PaginatorBase):
    """
    Asynchronous page sequence over an AsyncTransport.

    Backoff sleeps use asyncio.sleep. Use ``async with`` to guarantee the
    cursor is released when leaving an ``async for`` early; an abandoned
    async generator is otherwise only finalized by the event loop.
    """

    def __init__(
        self,
        transport: AsyncTransport,
        request: PageRequest,
        options: Optional[PageOptions] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        super().__init__(request, options)
        self._transport = transport
        self._sleep = sleep

    async def __aiter__(self) -> AsyncIterator[AsyncPage]:
        try:
            while True:
                page = await self._fetch_next()
                if page is None:
                    return
                yield page
        finally:
            await self.clear()

    async def _send(self, fetch: FetchRequest) -> ResponseEnvelope:
        return await self._transport.request(
            fetch.method,
            fetch.path,
            querystring=fetch.querystring,
            body=fetch.body,
            options=self._transport_options(fetch)
        )

    async def _fetch_next(self) -> Optional[AsyncPage]:
        if self.closed:
            return None
        pending = self._pending_fetch()
        if pending is None:
            await self._finish()
            return None

        fetch, cursor = pending
        self._state = PaginationState.AWAITING_PAGE
        envelope = await async_fetch_with_retry(lambda: self._send(fetch), self._policy, self._sleep)
        step = self._accept(envelope, cursor)
        if step is None:
            await self._finish()
            return None
        return AsyncPage(envelope, step.hits, self._exhausted, self)

    async def _finish(self) -> None:
        if self._adapter.clear_on_exhaustion:
            await self.clear()
        else:
            self._state = PaginationState.CLOSED

    async def clear(self) -> None:
        """Stop iterating and release the cursor. Safe to call repeatedly."""
        if self.closed:
            return
        self._state = PaginationState.DRAINING
        try:
            fetch = self._release_request()
            if fetch is not None:
                await self._send(fetch)
                logger.debug("Released %s cursor", self.kind)
        except CaproneIterError as err:
            self._log_release_failure(err)
        finally:
            self._state = PaginationState.CLOSED

    close = clear

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.clear()
