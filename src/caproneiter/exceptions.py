"""
CaproneIter Exceptions
======================

Exception hierarchy shared by the transport, retry policy and paginators.

    CaproneIterError
        TransportError      connection-level failure, no HTTP status
            ResponseError   the cluster answered with a non-2xx status
"""

from typing import Any, Dict, Optional


class CaproneIterError(Exception):
    """Base exception for all CaproneIter errors."""


class TransportError(CaproneIterError):
    """Raised when a request never produced an HTTP response."""


class ResponseError(TransportError):
    """
    Raised when the cluster answers with a status that is neither 2xx
    nor listed in the request's ignored statuses.

    Attributes:
        status_code: HTTP status of the response
        body: Decoded response body (usually the Elasticsearch error object)
        headers: Response headers
    """

    def __init__(
        self,
        status_code: int,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        super().__init__(f"ResponseError({status_code}, {self.reason!r})")

    @property
    def reason(self) -> str:
        """Best-effort error type from an Elasticsearch error body."""
        if isinstance(self.body, dict):
            error = self.body.get("error")
            if isinstance(error, dict):
                return str(error.get("type") or error.get("reason") or "")
            if error:
                return str(error)
        return ""

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429
