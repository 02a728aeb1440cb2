"""Consul KV key access for a single lock key."""

import base64
import binascii
import json
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from consul_mutex.exceptions import ConsulError
from consul_mutex.logging import get_logger
from consul_mutex.transport import ConsulTransport, expect_boolean

logger = get_logger(__name__)

INDEX_HEADER = "X-Consul-Index"


@dataclass(frozen=True)
class KeySnapshot:
    """One observation of the lock key.

    ``index`` is Consul's opaque modify index, used both for blocking reads
    and for check-and-set deletes. ``session`` is the holder of the lock, or
    ``None`` when the key is unheld.
    """

    index: str | None
    session: str | None
    value: bytes | None = None

    @property
    def held(self) -> bool:
        return self.session is not None


def parse_key_response(response: httpx.Response) -> KeySnapshot:
    """Parse a 200 response to ``GET /v1/kv/<key>``.

    Consul returns a JSON array with one object per matching key; anything
    else means we are not talking to the API we think we are.
    """
    try:
        data = json.loads(response.text)
    except ValueError as e:
        raise ConsulError(f"Consul returned unparseable JSON: {e}") from e

    if not isinstance(data, list):
        raise ConsulError(
            f"Consul did not return an array; instead, it is a {type(data).__name__}"
        )

    if len(data) != 1:
        raise ConsulError(f"Invalid number of objects returned: expected 1, got {len(data)}")

    entry = data[0]
    if not isinstance(entry, dict):
        raise ConsulError(
            f"Consul returned a {type(entry).__name__} where a key object was expected"
        )

    value = entry.get("Value")
    if value is not None:
        try:
            value = base64.b64decode(value)
        except (binascii.Error, TypeError, ValueError) as e:
            raise ConsulError(f"Consul returned an undecodable key value: {e}") from e

    return KeySnapshot(
        index=response.headers.get(INDEX_HEADER),
        session=entry.get("Session") or None,
        value=value,
    )


class LockKey:
    """The KV operations the mutex performs on its lock key."""

    def __init__(self, transport: ConsulTransport, key: str) -> None:
        self.transport = transport
        self.key = key
        # Keys may contain "?", "#" or spaces; only "/" separates segments.
        self.path = f"/v1/kv/{quote(key, safe='/')}"

    async def read(self, index: str | None = None) -> KeySnapshot | None:
        """
        Read the key with consistent semantics.

        Args:
            index: When given, block until the key's index moves past it

        Returns:
            The parsed key, or None if the key does not exist
        """
        query: dict[str, object | None] = {"consistent": None}
        if index is not None:
            query["index"] = index

        response = await self.transport.request("GET", self.path, query=query)

        if response.status_code == 404:
            return None
        if response.status_code == 200:
            return parse_key_response(response)

        url = self.transport.url_for(self.path, query)
        raise ConsulError(
            f"Consul returned bad response to GET {url}: "
            f"{response.status_code}: {response.reason_phrase}",
            status_code=response.status_code,
            operation=f"GET {url}",
        )

    async def acquire(self, value: str | bytes, session_id: str) -> bool:
        """Try to take the lock on behalf of ``session_id``."""
        return await self._put(value, {"acquire": session_id})

    async def release(self, session_id: str) -> bool:
        """Release the lock held by ``session_id``, clearing the value."""
        return await self._put("", {"release": session_id})

    async def delete(self, cas: str) -> bool:
        """Delete the key only if it has not changed since index ``cas``."""
        query: dict[str, object | None] = {"cas": cas}
        response = await self.transport.request("DELETE", self.path, query=query)
        return expect_boolean(response, f"DELETE {self.transport.url_for(self.path, query)}")

    async def _put(self, value: str | bytes, query: dict[str, object | None]) -> bool:
        response = await self.transport.request("PUT", self.path, query=query, content=value)
        return expect_boolean(response, f"PUT {self.transport.url_for(self.path, query)}")
