"""
HTTP transport to the Consul agent.

Every request opens its own connection: blocking reads can hold a connection
open for a long time, so nothing is pooled between requests. Transport-level
failures are translated into ``ConsulError``.
"""

import re
from urllib.parse import quote, urlsplit, urlunsplit

import httpx

from consul_mutex.exceptions import ConsulError
from consul_mutex.logging import get_logger

logger = get_logger(__name__)

_NAME_RESOLUTION_MARKERS = (
    "Name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "Temporary failure in name resolution",
)
_CONNECTION_REFUSED_MARKERS = (
    "Connection refused",
    "ECONNREFUSED",
    "actively refused",
)


def encode_query(params: dict[str, object | None]) -> str:
    """Encode query arguments the way Consul documents them.

    Flags with a ``None`` value are emitted bare (``?consistent``), the rest
    as ``name=value``.
    """
    parts = []
    for name, value in params.items():
        if value is None:
            parts.append(quote(name, safe=""))
        else:
            parts.append(f"{quote(name, safe='')}={quote(str(value), safe='')}")
    return "&".join(parts)


def expect_boolean(response: httpx.Response, operation: str) -> bool:
    """Interpret a ``true``/``false`` Consul response body.

    Raises:
        ConsulError: On a non-200 status or any other body
    """
    if response.status_code != 200:
        raise ConsulError(
            f"Unexpected response code to {operation}: "
            f"{response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            operation=operation,
        )

    body = response.text.strip()
    if body == "true":
        return True
    if body == "false":
        return False

    raise ConsulError(
        f"Unexpected response body to {operation}: {response.text!r}",
        status_code=response.status_code,
        operation=operation,
    )


class ConsulTransport:
    """Issues HTTP requests against a Consul agent."""

    def __init__(
        self,
        base_url: str,
        read_timeout: float = 86400.0,
        connect_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            base_url: Consul agent URL (e.g., http://localhost:8500)
            read_timeout: Read timeout in seconds, large enough for blocking reads
            connect_timeout: Connect timeout in seconds
            transport: Optional httpx transport, used to stub Consul in tests
        """
        self.base_url = base_url
        self.timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=read_timeout,
            pool=connect_timeout,
        )
        self._transport = transport

    def url_for(self, path: str, query: dict[str, object | None] | None = None) -> str:
        """Join ``path`` onto the base URL, collapsing duplicate slashes."""
        parts = urlsplit(self.base_url)
        joined = re.sub(r"/+", "/", f"{parts.path}/{path}")
        return urlunsplit(
            (parts.scheme, parts.netloc, joined, encode_query(query or {}), "")
        )

    async def request(
        self,
        method: str,
        path: str,
        query: dict[str, object | None] | None = None,
        content: str | bytes | None = None,
    ) -> httpx.Response:
        """
        Make a single HTTP request to Consul.

        Args:
            method: HTTP method (GET, PUT, DELETE)
            path: API path (e.g., /v1/kv/some/lock)
            query: Query arguments, see ``encode_query``
            content: Request body

        Returns:
            The raw response, whatever its status

        Raises:
            ConsulError: On any transport-level failure
        """
        url = self.url_for(path, query)
        operation = f"{method} {url}"
        logger.debug("Consul request", method=method, url=url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, content=content)

        except httpx.TimeoutException as e:
            logger.error("Consul request timeout", url=url, error=str(e))
            raise ConsulError("Consul request failed: timeout", operation=operation) from e

        except httpx.ConnectError as e:
            logger.error("Consul connection error", url=url, error=str(e))
            if any(marker in str(e) for marker in _NAME_RESOLUTION_MARKERS):
                raise ConsulError(
                    "Consul request failed: Name resolution failure",
                    operation=operation,
                ) from e
            if any(marker in str(e) for marker in _CONNECTION_REFUSED_MARKERS):
                raise ConsulError(
                    "Consul request failed: connection refused",
                    operation=operation,
                ) from e
            raise ConsulError(f"Consul request failed: {e}", operation=operation) from e

        except (httpx.RemoteProtocolError, httpx.DecodingError) as e:
            logger.error("Bad HTTP response from Consul", url=url, error=str(e))
            raise ConsulError(
                f"Bad HTTP response from Consul: {e}",
                operation=operation,
            ) from e

        except httpx.TransportError as e:
            logger.error("Consul request error", url=url, error=str(e))
            raise ConsulError(f"Consul request failed: {e}", operation=operation) from e

        logger.debug(
            "Consul response",
            method=method,
            url=url,
            status=response.status_code,
        )
        return response
