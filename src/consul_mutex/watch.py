"""Lock-loss detection by blocking reads on the lock key."""

from consul_mutex.exceptions import ConsulError
from consul_mutex.keys import KeySnapshot, LockKey
from consul_mutex.logging import get_logger

logger = get_logger(__name__)


class LockWatcher:
    """Blocks on the lock key until it no longer shows our session.

    The watcher keeps its own copy of the index it blocks on and never
    touches coordinator state; its only output is the final snapshot.
    """

    def __init__(self, key: LockKey, session_id: str, index: str | None) -> None:
        self.key = key
        self.session_id = session_id
        self.index = index

    async def watch(self) -> KeySnapshot | None:
        """
        Wait for the lock to be lost.

        Returns:
            The snapshot showing a foreign or empty session, or None if the
            key was deleted

        Raises:
            ConsulError: On any transport or protocol failure
        """
        index = self.index

        while True:
            if index is None:
                raise ConsulError(
                    f"Consul did not return an index for {self.key.path}; cannot watch the lock"
                )

            snapshot = await self.key.read(index)
            if snapshot is None or snapshot.session != self.session_id:
                return snapshot

            # Still ours; the index moved for some other reason.
            logger.debug("Lock still held", key=self.key.key, index=snapshot.index)
            index = snapshot.index
