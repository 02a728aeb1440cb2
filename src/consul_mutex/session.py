"""Consul session lifecycle for one mutex acquisition."""

import json

from consul_mutex.exceptions import ConsulError
from consul_mutex.logging import get_logger
from consul_mutex.transport import ConsulTransport

logger = get_logger(__name__)


class SessionManager:
    """Lazily creates, memoizes and destroys a single Consul session."""

    CREATE_PATH = "/v1/session/create"
    DESTROY_PATH = "/v1/session/destroy/{session_id}"

    def __init__(self, transport: ConsulTransport) -> None:
        self.transport = transport
        self._session_id: str | None = None

    @property
    def active(self) -> bool:
        """Whether a session currently exists."""
        return self._session_id is not None

    @property
    def current(self) -> str | None:
        return self._session_id

    async def session_id(self) -> str:
        """
        Return our session, creating it on first use.

        Raises:
            ConsulError: If Consul refuses or garbles the session creation
        """
        if self._session_id is None:
            self._session_id = await self._create()
        return self._session_id

    async def _create(self) -> str:
        response = await self.transport.request("PUT", self.CREATE_PATH, content="")

        if response.status_code != 200:
            raise ConsulError(
                "Unexpected response from Consul session creation: "
                f"{response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                operation=f"PUT {self.CREATE_PATH}",
            )

        try:
            data = json.loads(response.text)
        except ValueError as e:
            raise ConsulError(f"Unparseable response from Consul session create: {e}") from e

        session_id = data.get("ID") if isinstance(data, dict) else None
        if not session_id:
            raise ConsulError("Consul did not provide us a session ID")

        logger.info("Consul session created", session=session_id)
        return session_id

    async def destroy(self) -> None:
        """
        Destroy the current session.

        On success the memoized session is forgotten, so a later call to
        ``session_id`` creates a fresh one.

        Raises:
            ConsulError: On a non-200 status or a body other than ``true``
        """
        if self._session_id is None:
            return

        path = self.DESTROY_PATH.format(session_id=self._session_id)
        response = await self.transport.request("PUT", path, content="")

        if response.status_code != 200:
            raise ConsulError(
                "Unexpected Consul response to session deletion: "
                f"{response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                operation=f"PUT {path}",
            )
        if response.text.strip() != "true":
            raise ConsulError(
                f"Unexpected Consul response to session deletion: {response.text}",
                status_code=response.status_code,
                operation=f"PUT {path}",
            )

        logger.info("Consul session destroyed", session=self._session_id)
        self._session_id = None
