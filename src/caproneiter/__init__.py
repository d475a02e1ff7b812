"""
CaproneIter — Stateful Pagination Helpers for Elasticsearch
===========================================================

Walk result sets of any size one page at a time, without holding them in
memory and without hand-managing cursors.

Key Features:
- Scroll cursors (with automatic clear) and search_after pagination
- Lazy, single-pass page and document sequences
- Bounded retry on 429 Too Many Requests
- Cursor release on exhaustion, early exit, and errors
- Sync (Elasticsearch) and async (AsyncElasticsearch) flavours

Usage:
    from caproneiter import SearchHelpers, PageRequest, PageOptions

    helpers = SearchHelpers.from_hosts(["http://localhost:9200"])

    # Pages
    for page in helpers.paginate(PageRequest("corpus", size=1000)):
        print(len(page.hits), page.body["_scroll_id"])

    # Documents, search_after with a unique tiebreaker
    options = PageOptions(search_after=True, tiebreaker="id")
    for doc in helpers.documents(PageRequest("corpus", sort=[{"year": "desc"}]), options):
        print(doc["title"])

License: MIT
"""

__version__ = "0.1.0"
__author__ = "Caprazli"

from .core import (
    AsyncSearchHelpers,
    SearchHelpers,
    async_documents,
    async_paginate,
    documents,
    paginate,
)
from .cursor import ScrollState, SearchAfterState
from .documents import aiter_documents, iter_documents
from .exceptions import CaproneIterError, ResponseError, TransportError
from .paginator import AsyncPage, AsyncPaginator, Page, PaginationState, Paginator
from .request import PageOptions, PageRequest
from .retry import RetryPolicy, async_fetch_with_retry, fetch_with_retry
from .transport import (
    AsyncElasticsearchTransport,
    ElasticsearchTransport,
    ResponseEnvelope,
    TransportOptions,
)

__all__ = [
    "SearchHelpers",
    "AsyncSearchHelpers",
    "paginate",
    "documents",
    "async_paginate",
    "async_documents",
    "iter_documents",
    "aiter_documents",
    "Paginator",
    "AsyncPaginator",
    "Page",
    "AsyncPage",
    "PaginationState",
    "PageRequest",
    "PageOptions",
    "ScrollState",
    "SearchAfterState",
    "RetryPolicy",
    "fetch_with_retry",
    "async_fetch_with_retry",
    "ElasticsearchTransport",
    "AsyncElasticsearchTransport",
    "ResponseEnvelope",
    "TransportOptions",
    "CaproneIterError",
    "TransportError",
    "ResponseError",
]
