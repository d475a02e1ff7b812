"""
CaproneIter Transport — Request/Response Boundary
=================================================

The paginators never talk to Elasticsearch directly. They hand a method,
path, querystring and body to a transport and get back a ResponseEnvelope,
or a ResponseError when the status is not 2xx and not ignored.

Two implementations wrap the official client:

    ElasticsearchTransport       →  elasticsearch.Elasticsearch
    AsyncElasticsearchTransport  →  elasticsearch.AsyncElasticsearch

The client never retries 429 itself; the paginators retry it with their
own policy (see retry.py).
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from elasticsearch import (
    ApiError,
    AsyncElasticsearch,
    Elasticsearch,
    TransportError as ESTransportError,
)

from .exceptions import ResponseError, TransportError


DEFAULT_HOSTS = ["http://localhost:9200"]

# Statuses the client may retry on its own; 429 is retried by the paginator.
CLIENT_RETRY_ON_STATUS = (502, 503, 504)

_WARNING_RE = re.compile(r'"([^"]*)"')


@dataclass(frozen=True)
class TransportOptions:
    """
    Per-call options understood by every transport.

    Args:
        ignore: Status codes returned as a normal envelope instead of raising
        headers: Extra request headers
        max_retries: Connection-level retries performed by the client
        request_timeout: Timeout in seconds for a single attempt
    """

    ignore: Tuple[int, ...] = ()
    headers: Optional[Dict[str, str]] = None
    max_retries: Optional[int] = None
    request_timeout: Optional[float] = None


@dataclass
class ResponseEnvelope:
    """A decoded response: body, status, headers and deprecation warnings."""

    body: Any
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


class Transport(Protocol):
    def request(
        self,
        method: str,
        path: str,
        querystring: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[TransportOptions] = None
    ) -> ResponseEnvelope:
        ...


class AsyncTransport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        querystring: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[TransportOptions] = None
    ) -> ResponseEnvelope:
        ...


def connection_kwargs(
    hosts: Optional[List[str]] = None,
    api_key: Optional[str] = None,
    basic_auth: Optional[tuple] = None,
    verify_certs: bool = True
) -> Dict[str, Any]:
    """
    Build keyword arguments for Elasticsearch / AsyncElasticsearch.

    Args:
        hosts: List of ES node URLs (default: ["http://localhost:9200"])
        api_key: API key for authentication
        basic_auth: Tuple of (username, password)
        verify_certs: Verify SSL certificates

    Returns:
        Dict suitable for the client constructor
    """
    conn_kwargs: Dict[str, Any] = {
        "hosts": hosts or DEFAULT_HOSTS,
        "verify_certs": verify_certs
    }

    if api_key:
        conn_kwargs["api_key"] = api_key
    elif basic_auth:
        conn_kwargs["basic_auth"] = basic_auth

    return conn_kwargs


def _client_options(options: TransportOptions) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"retry_on_status": CLIENT_RETRY_ON_STATUS}
    if options.ignore:
        kwargs["ignore_status"] = tuple(options.ignore)
    if options.headers:
        kwargs["headers"] = dict(options.headers)
    if options.max_retries is not None:
        kwargs["max_retries"] = options.max_retries
    if options.request_timeout is not None:
        kwargs["request_timeout"] = options.request_timeout
    return kwargs


def _request_headers(
    body: Optional[Dict[str, Any]],
    headers: Optional[Dict[str, str]]
) -> Dict[str, str]:
    request_headers = {"accept": "application/json"}
    if body is not None:
        request_headers["content-type"] = "application/json"
    if headers:
        request_headers.update(headers)
    return request_headers


def _to_envelope(response: Any) -> ResponseEnvelope:
    headers = dict(response.meta.headers)
    warning = headers.get("warning") or headers.get("Warning")
    return ResponseEnvelope(
        body=response.body,
        status_code=response.meta.status,
        headers=headers,
        warnings=_WARNING_RE.findall(warning) if warning else []
    )


def _to_response_error(err: ApiError) -> ResponseError:
    return ResponseError(
        err.meta.status,
        err.body,
        headers=dict(err.meta.headers)
    )


class ElasticsearchTransport:
    """
    Transport backed by a synchronous Elasticsearch client.

    Example:
        transport = ElasticsearchTransport.from_hosts(["http://localhost:9200"])
        envelope = transport.request("POST", "/corpus/_search", body={"size": 1})
    """

    def __init__(self, client: Elasticsearch):
        self._client = client

    @classmethod
    def from_hosts(
        cls,
        hosts: Optional[List[str]] = None,
        api_key: Optional[str] = None,
        basic_auth: Optional[tuple] = None,
        verify_certs: bool = True
    ) -> "ElasticsearchTransport":
        return cls(Elasticsearch(**connection_kwargs(
            hosts, api_key, basic_auth, verify_certs
        )))

    @property
    def client(self) -> Elasticsearch:
        return self._client

    def request(
        self,
        method: str,
        path: str,
        querystring: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[TransportOptions] = None
    ) -> ResponseEnvelope:
        """
        Execute one request.

        Raises:
            ResponseError: Non-2xx status not listed in options.ignore
            TransportError: The request never got a response
        """
        client = self._client.options(**_client_options(options or TransportOptions()))
        try:
            response = client.perform_request(
                method,
                path,
                params=querystring or None,
                headers=_request_headers(body, headers),
                body=body
            )
        except ApiError as err:
            raise _to_response_error(err) from err
        except ESTransportError as err:
            raise TransportError(str(err)) from err
        return _to_envelope(response)

    def close(self):
        """Close the Elasticsearch client connection."""
        self._client.close()


class AsyncElasticsearchTransport:
    """Transport backed by an AsyncElasticsearch client."""

    def __init__(self, client: AsyncElasticsearch):
        self._client = client

    @classmethod
    def from_hosts(
        cls,
        hosts: Optional[List[str]] = None,
        api_key: Optional[str] = None,
        basic_auth: Optional[tuple] = None,
        verify_certs: bool = True
    ) -> "AsyncElasticsearchTransport":
        return cls(AsyncElasticsearch(**connection_kwargs(
            hosts, api_key, basic_auth, verify_certs
        )))

    @property
    def client(self) -> AsyncElasticsearch:
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        querystring: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[TransportOptions] = None
    ) -> ResponseEnvelope:
        client = self._client.options(**_client_options(options or TransportOptions()))
        try:
            response = await client.perform_request(
                method,
                path,
                params=querystring or None,
                headers=_request_headers(body, headers),
                body=body
            )
        except ApiError as err:
            raise _to_response_error(err) from err
        except ESTransportError as err:
            raise TransportError(str(err)) from err
        return _to_envelope(response)

    async def close(self):
        """Close the AsyncElasticsearch client connection."""
        await self._client.close()
