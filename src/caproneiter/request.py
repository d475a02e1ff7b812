"""Query specification and pagination options."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

from .retry import RetryPolicy
from .transport import TransportOptions


DEFAULT_SCROLL = "1m"
DEFAULT_TIEBREAKER = "id"


@dataclass(frozen=True)
class PageRequest:
    """
    What to search: target indices, query and paging parameters.

    Args:
        index: Index name or list of names
        query: Query DSL (None = match_all on the server)
        sort: Sort clause (list, single field name, or single dict)
        size: Hits per page
        body: Extra search body keys (_source, track_total_hits, ...)
        params: Extra querystring parameters (filter_path, routing, ...)

    Example:
        PageRequest("corpus", query={"match": {"title": "quantum"}}, size=500)
    """

    index: Union[str, List[str]]
    query: Optional[Dict[str, Any]] = None
    sort: Optional[Union[str, Dict[str, Any], List[Any]]] = None
    size: Optional[int] = None
    body: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.index:
            raise ValueError("index must not be empty")
        if self.size is not None and self.size < 1:
            raise ValueError("size must be >= 1")

    @property
    def search_path(self) -> str:
        names = [self.index] if isinstance(self.index, str) else list(self.index)
        return "/" + ",".join(quote(name, safe="*") for name in names) + "/_search"

    def search_body(self) -> Dict[str, Any]:
        """Body of a plain search built from this request."""
        body = dict(self.body)
        if self.query is not None:
            body["query"] = self.query
        if self.sort is not None:
            body["sort"] = self.sort
        if self.size is not None:
            body["size"] = self.size
        return body

    def with_filter_path(self, *fields: str, create: bool = False) -> "PageRequest":
        """
        Return a copy whose filter_path also keeps the given fields.

        The caller's own entries are preserved. Without create, a request
        with no filter_path is returned unchanged.
        """
        current = self.params.get("filter_path")
        if current is None and not create:
            return self

        if current is None:
            entries: List[str] = []
        elif isinstance(current, str):
            entries = [e for e in current.split(",") if e]
        else:
            entries = list(current)

        for name in fields:
            if name not in entries:
                entries.append(name)

        return replace(self, params={**self.params, "filter_path": ",".join(entries)})


@dataclass(frozen=True)
class PageOptions:
    """
    How to paginate.

    Args:
        scroll: Scroll cursor lifetime
        search_after: Use search_after instead of a scroll cursor
        wait_ms: Delay between rate-limit retries, in milliseconds
        max_retries: Rate-limit retries per page fetch
        ignore: Status codes treated as success by the transport
        headers: Extra headers sent with every request
        request_timeout: Per-attempt timeout in seconds
        clear_on_exhaustion: Clear the scroll after the final empty page
        tiebreaker: Unique field appended to search_after sorts
    """

    scroll: str = DEFAULT_SCROLL
    search_after: bool = False
    wait_ms: int = 5000
    max_retries: int = 3
    ignore: Tuple[int, ...] = ()
    headers: Optional[Dict[str, str]] = None
    request_timeout: Optional[float] = None
    clear_on_exhaustion: bool = True
    tiebreaker: str = DEFAULT_TIEBREAKER

    def __post_init__(self):
        if not self.scroll:
            raise ValueError("scroll must be a duration such as '1m'")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.wait_ms < 0:
            raise ValueError("wait_ms must be >= 0")
        if not self.tiebreaker:
            raise ValueError("tiebreaker must name a field")
        object.__setattr__(self, "ignore", tuple(self.ignore))

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, wait_ms=self.wait_ms)

    def transport_options(self) -> TransportOptions:
        return TransportOptions(
            ignore=self.ignore,
            headers=self.headers,
            request_timeout=self.request_timeout
        )
