"""
CaproneIter Cursors — Scroll and Search-After Protocol Adapters
===============================================================

An adapter knows how to open, advance and release one kind of cursor. It
performs no I/O and holds no cursor state: the paginator owns the current
state and passes it into every step, getting a new state back.

    ScrollAdapter        server-side cursor with a lifetime, must be cleared
    SearchAfterAdapter   stateless, resubmits the search after the last sort

Step contract:
    open()              →  (FetchRequest, initial state)
    advance(state)      →  FetchRequest for the next page
    step(body, state)   →  PageStep(next state, hits, exhausted)
    release(state)      →  FetchRequest to free the cursor, or None
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .request import PageOptions, PageRequest


DEFAULT_PAGE_SIZE = 10

# Sort fields that already give a total order.
UNIQUE_SORT_FIELDS = frozenset({"_shard_doc"})


@dataclass(frozen=True)
class FetchRequest:
    """One request the paginator hands to the transport."""

    method: str
    path: str
    querystring: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    ignore: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ScrollState:
    scroll_id: Optional[str]
    scroll: str


@dataclass(frozen=True)
class SearchAfterState:
    sort_values: Optional[List[Any]]
    tiebreaker: str

    @property
    def tiebreaker_value(self) -> Any:
        """Tiebreaker value of the last hit seen (last sort value)."""
        return self.sort_values[-1] if self.sort_values else None


CursorState = Union[ScrollState, SearchAfterState]


@dataclass(frozen=True)
class PageStep:
    """Outcome of one successful fetch."""

    cursor: CursorState
    hits: List[Dict[str, Any]]
    exhausted: bool


def extract_hits(body: Any) -> List[Dict[str, Any]]:
    """hits.hits of a search response, or [] for anything else."""
    if not isinstance(body, dict):
        return []
    hits = body.get("hits") or {}
    return list(hits.get("hits") or [])


def _sort_field(clause: Any) -> Optional[str]:
    if isinstance(clause, str):
        return clause
    if isinstance(clause, dict) and clause:
        return next(iter(clause))
    return None


def with_tiebreaker(sort: Any, tiebreaker: str) -> List[Any]:
    """
    Normalize a sort clause to a list and append an ascending tiebreaker
    unless the sort already orders by it (or by another unique field).

    Args:
        sort: Caller's sort (None, field name, dict, or list of those)
        tiebreaker: Unique field name

    Returns:
        New sort list
    """
    if sort is None:
        clauses: List[Any] = []
    elif isinstance(sort, (str, dict)):
        clauses = [sort]
    else:
        clauses = list(sort)

    fields = {_sort_field(c) for c in clauses}
    if tiebreaker not in fields and not fields & UNIQUE_SORT_FIELDS:
        clauses.append({tiebreaker: "asc"})
    return clauses


class ScrollAdapter:
    """
    Scroll cursor: opened by a search with ?scroll=, advanced through
    /_search/scroll, released with DELETE /_search/scroll.
    """

    kind = "scroll"
    requires_release = True

    def __init__(self, request: PageRequest, scroll: str, clear_on_exhaustion: bool = True):
        # _scroll_id must survive a caller-provided filter_path.
        self.request = request.with_filter_path("_scroll_id")
        self.scroll = scroll
        self.clear_on_exhaustion = clear_on_exhaustion

    def open(self) -> Tuple[FetchRequest, ScrollState]:
        querystring = {**self.request.params, "scroll": self.scroll}
        fetch = FetchRequest(
            "POST",
            self.request.search_path,
            querystring,
            self.request.search_body()
        )
        return fetch, ScrollState(scroll_id=None, scroll=self.scroll)

    def advance(self, cursor: ScrollState) -> FetchRequest:
        querystring = {}
        if "rest_total_hits_as_int" in self.request.params:
            querystring["rest_total_hits_as_int"] = self.request.params["rest_total_hits_as_int"]
        return FetchRequest(
            "POST",
            "/_search/scroll",
            querystring,
            {"scroll": cursor.scroll, "scroll_id": cursor.scroll_id}
        )

    def step(self, body: Any, cursor: ScrollState) -> PageStep:
        hits = extract_hits(body)
        token = body.get("_scroll_id") if isinstance(body, dict) else None
        # Keep the last known token so it can still be released.
        return PageStep(
            cursor=ScrollState(scroll_id=token or cursor.scroll_id, scroll=cursor.scroll),
            hits=hits,
            exhausted=not hits or not token
        )

    def release(self, cursor: Optional[ScrollState]) -> Optional[FetchRequest]:
        if cursor is None or not cursor.scroll_id:
            return None
        return FetchRequest(
            "DELETE",
            "/_search/scroll",
            {},
            {"scroll_id": [cursor.scroll_id]},
            ignore=(400, 404)
        )


class SearchAfterAdapter:
    """
    Search-after cursor: the same search resubmitted with search_after set
    to the sort values of the previous page's last hit. Nothing to release.
    """

    kind = "search_after"
    requires_release = False
    clear_on_exhaustion = False

    def __init__(self, request: PageRequest, tiebreaker: str):
        self.request = request.with_filter_path("hits.hits.sort")
        self.tiebreaker = tiebreaker
        self.page_size = request.size or DEFAULT_PAGE_SIZE
        self.sort = with_tiebreaker(request.sort, tiebreaker)

    def _search(self, sort_values: Optional[List[Any]]) -> FetchRequest:
        body = self.request.search_body()
        body["sort"] = self.sort
        body["size"] = self.page_size
        if sort_values is not None:
            body["search_after"] = list(sort_values)
        return FetchRequest("POST", self.request.search_path, dict(self.request.params), body)

    def open(self) -> Tuple[FetchRequest, SearchAfterState]:
        return self._search(None), SearchAfterState(sort_values=None, tiebreaker=self.tiebreaker)

    def advance(self, cursor: SearchAfterState) -> FetchRequest:
        return self._search(cursor.sort_values)

    def step(self, body: Any, cursor: SearchAfterState) -> PageStep:
        hits = extract_hits(body)
        if not hits:
            return PageStep(cursor=cursor, hits=[], exhausted=True)

        sort_values = hits[-1].get("sort")
        # A last hit without sort values cannot be continued from.
        return PageStep(
            cursor=SearchAfterState(sort_values=sort_values or cursor.sort_values, tiebreaker=self.tiebreaker),
            hits=hits,
            exhausted=len(hits) < self.page_size or not sort_values
        )

    def release(self, cursor: Optional[SearchAfterState]) -> Optional[FetchRequest]:
        return None


CursorAdapter = Union[ScrollAdapter, SearchAfterAdapter]


def make_adapter(request: PageRequest, options: PageOptions) -> CursorAdapter:
    """Pick the cursor adapter selected by options.search_after."""
    if options.search_after:
        return SearchAfterAdapter(request, options.tiebreaker)
    return ScrollAdapter(request, options.scroll, options.clear_on_exhaustion)
