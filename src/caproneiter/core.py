"""
CaproneIter Core — Pagination Helpers over Elasticsearch
========================================================

Entry points for walking result sets larger than one search response:

    paginate()   →  lazy sequence of pages  (page.body, page.clear())
    documents()  →  lazy sequence of hit _source payloads

Two cursor kinds are supported, selected by PageOptions.search_after:

    scroll        server-side cursor with a lifetime, cleared when done
    search_after  stateless, resumes after the last hit's sort values

Usage:
    from caproneiter import SearchHelpers, PageRequest, PageOptions

    with SearchHelpers.from_hosts(["http://localhost:9200"]) as helpers:
        request = PageRequest("corpus", query={"match_all": {}}, size=1000)
        for doc in helpers.documents(request, PageOptions(scroll="2m")):
            print(doc["id"])
"""

from typing import Any, AsyncIterator, Iterator, List, Optional

from .documents import aiter_documents, iter_documents
from .paginator import AsyncPaginator, Paginator
from .request import PageOptions, PageRequest
from .transport import (
    AsyncElasticsearchTransport,
    AsyncTransport,
    ElasticsearchTransport,
    Transport,
)


DOCUMENT_FIELD = "hits.hits._source"


def paginate(
    transport: Transport,
    request: PageRequest,
    options: Optional[PageOptions] = None
) -> Paginator:
    """
    Page-level iteration.

    Args:
        transport: Transport executing the requests
        request: Index, query, sort and page size
        options: Cursor kind, lifetime, retries and ignored statuses

    Returns:
        A single-pass Paginator; each page exposes body and clear()
    """
    return Paginator(transport, request, options)


def documents(
    transport: Transport,
    request: PageRequest,
    options: Optional[PageOptions] = None
) -> Iterator[Any]:
    """
    Document-level iteration: every hit's _source, in order.

    Only _source (plus the cursor fields) is requested from the cluster.
    """
    request = request.with_filter_path(DOCUMENT_FIELD, create=True)
    return iter_documents(Paginator(transport, request, options))


def async_paginate(
    transport: AsyncTransport,
    request: PageRequest,
    options: Optional[PageOptions] = None
) -> AsyncPaginator:
    """Async page-level iteration."""
    return AsyncPaginator(transport, request, options)


def async_documents(
    transport: AsyncTransport,
    request: PageRequest,
    options: Optional[PageOptions] = None
) -> AsyncIterator[Any]:
    """Async document-level iteration."""
    request = request.with_filter_path(DOCUMENT_FIELD, create=True)
    return aiter_documents(AsyncPaginator(transport, request, options))


class SearchHelpers:
    """
    Pagination helpers bound to one transport.

    Example:
        # Local Elasticsearch
        helpers = SearchHelpers.from_hosts()
        for page in helpers.paginate(PageRequest("corpus", size=500)):
            print(len(page.hits))

        # Production cluster
        helpers = SearchHelpers.from_hosts(
            hosts=["https://es1:9200", "https://es2:9200"],
            api_key="your-api-key"
        )
    """

    def __init__(self, transport: Transport, options: Optional[PageOptions] = None):
        """
        Args:
            transport: Transport executing the requests
            options: Defaults used when a call passes no options
        """
        self.transport = transport
        self.options = options or PageOptions()

    @classmethod
    def from_hosts(
        cls,
        hosts: Optional[List[str]] = None,
        api_key: Optional[str] = None,
        basic_auth: Optional[tuple] = None,
        verify_certs: bool = True,
        options: Optional[PageOptions] = None
    ) -> "SearchHelpers":
        """
        Connect to Elasticsearch.

        Args:
            hosts: List of ES node URLs (default: ["http://localhost:9200"])
            api_key: API key for authentication
            basic_auth: Tuple of (username, password)
            verify_certs: Verify SSL certificates
            options: Default pagination options
        """
        transport = ElasticsearchTransport.from_hosts(hosts, api_key, basic_auth, verify_certs)
        return cls(transport, options)

    def paginate(self, request: PageRequest, options: Optional[PageOptions] = None) -> Paginator:
        return paginate(self.transport, request, options or self.options)

    def documents(self, request: PageRequest, options: Optional[PageOptions] = None) -> Iterator[Any]:
        return documents(self.transport, request, options or self.options)

    def close(self):
        """Close the underlying client connection, if the transport has one."""
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class AsyncSearchHelpers:
    """Pagination helpers bound to one async transport."""

    def __init__(self, transport: AsyncTransport, options: Optional[PageOptions] = None):
        self.transport = transport
        self.options = options or PageOptions()

    @classmethod
    def from_hosts(
        cls,
        hosts: Optional[List[str]] = None,
        api_key: Optional[str] = None,
        basic_auth: Optional[tuple] = None,
        verify_certs: bool = True,
        options: Optional[PageOptions] = None
    ) -> "AsyncSearchHelpers":
        transport = AsyncElasticsearchTransport.from_hosts(hosts, api_key, basic_auth, verify_certs)
        return cls(transport, options)

    def paginate(self, request: PageRequest, options: Optional[PageOptions] = None) -> AsyncPaginator:
        return async_paginate(self.transport, request, options or self.options)

    def documents(self, request: PageRequest, options: Optional[PageOptions] = None) -> AsyncIterator[Any]:
        return async_documents(self.transport, request, options or self.options)

    async def close(self):
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
