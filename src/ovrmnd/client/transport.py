"""HTTP transport: the only component that touches the network.

:class:`Transport` is the protocol the executor depends on;
:class:`HttpTransport` implements it on top of :class:`httpx.Client`.  Tests
substitute :class:`httpx.MockTransport` through the ``transport`` argument
rather than replacing this class.

Network-level failures (timeouts, DNS, refused connections) raise
:class:`~ovrmnd.exceptions.TransportError`.  Non-2xx responses are *not*
errors at this layer; they are returned and the executor decides.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel, Field

from ovrmnd.exceptions import TransportError

logger = logging.getLogger(__name__)

USER_AGENT = "ovrmnd"


class TransportRequest(BaseModel):
    method: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    json_body: Optional[Any] = None


class TransportResponse(BaseModel):
    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    reason: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    def send(self, request: TransportRequest) -> TransportResponse: ...


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text.

    An empty body decodes to ``None``.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


class HttpTransport:
    """Blocking transport backed by :class:`httpx.Client`.

    Args:
        timeout: Request timeout in seconds.
        verify_ssl: Verify TLS certificates.
        transport: Optional :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        with HttpTransport(timeout=10) as transport:
            response = transport.send(TransportRequest(method="GET", url="https://api.example.com/users"))
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> HttpTransport:
        self._ensure_client()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._timeout,
                verify=self._verify_ssl,
                follow_redirects=True,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    def send(self, request: TransportRequest) -> TransportResponse:
        """Send *request* and return the decoded response.

        Raises:
            TransportError: On timeouts and network errors.
        """
        client = self._ensure_client()
        kwargs: dict[str, Any] = {"headers": request.headers}
        if request.json_body is not None:
            kwargs["json"] = request.json_body

        try:
            response = client.request(request.method, request.url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"Request to {request.url} timed out after {self._timeout}s",
                details={"url": request.url},
                help="Increase request.timeout in the global config",
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(
                f"Connection failed: {exc}",
                details={"url": request.url},
                help="Check the service's baseUrl and your network connection",
            ) from exc

        logger.debug("%s %s -> %d", request.method, request.url, response.status_code)
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=decode_body(response),
            reason=response.reason_phrase,
        )
