"""Lock acquisition: wait for a free key, take it, then prove we hold it."""

from consul_mutex.keys import KeySnapshot, LockKey
from consul_mutex.logging import get_logger
from consul_mutex.session import SessionManager

logger = get_logger(__name__)


class LockAcquirer:
    """Drives the acquire protocol for one ``synchronize`` call.

    Consul locks are advisory: a successful ``?acquire=`` PUT only means the
    key was ours at that instant. Someone can delete and recreate the key
    straight afterwards, and PUTs do not return an ``X-Consul-Index`` to
    watch from. So after every successful acquire the key is read back, and
    only a read showing our own session counts as holding the lock. That
    read also supplies the index the watcher blocks on.

    ``last_index`` is the most recent index observed during this call. Once
    set, every wait-for-free read is a blocking read, so contention never
    turns into a busy loop.
    """

    def __init__(
        self,
        key: LockKey,
        sessions: SessionManager,
        value: str | bytes,
    ) -> None:
        self.key = key
        self.sessions = sessions
        self.value = value
        self.last_index: str | None = None

    async def acquire(self) -> KeySnapshot:
        """
        Block until the lock is held by our session.

        Returns:
            The read confirming our ownership

        Raises:
            ConsulError: On any transport or protocol failure
        """
        while True:
            await self._wait_for_free_lock()

            snapshot = await self._attempt()
            if snapshot is None:
                logger.warning("Lock acquire lost to contention", key=self.key.key)
                continue

            session_id = self.sessions.current
            if snapshot.session == session_id:
                logger.info(
                    "Lock acquired",
                    key=self.key.key,
                    session=session_id,
                    index=snapshot.index,
                )
                return snapshot

            # Someone got the lock out from underneath us; start over.
            logger.warning(
                "Lock taken by another session after acquire",
                key=self.key.key,
                session=snapshot.session,
            )

    async def _wait_for_free_lock(self) -> None:
        while True:
            snapshot = await self._read(wait=self.last_index is not None)
            if snapshot is None or snapshot.session is None:
                return
            logger.debug(
                "Lock held, waiting for change",
                key=self.key.key,
                session=snapshot.session,
                index=self.last_index,
            )

    async def _attempt(self) -> KeySnapshot | None:
        """Acquire and read back until the read shows some session.

        The session is created on the first attempt. Returns None when
        Consul refuses the acquire.
        """
        session_id = await self.sessions.session_id()
        snapshot: KeySnapshot | None = None
        while snapshot is None or snapshot.session is None:
            if not await self.key.acquire(self.value, session_id):
                return None
            snapshot = await self._read()
        return snapshot

    async def _read(self, wait: bool = False) -> KeySnapshot | None:
        snapshot = await self.key.read(self.last_index if wait else None)
        if snapshot is not None:
            self.last_index = snapshot.index
        return snapshot
