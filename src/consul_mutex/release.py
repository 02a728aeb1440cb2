"""Lock release and key cleanup."""

from consul_mutex.exceptions import ConsulError
from consul_mutex.keys import LockKey
from consul_mutex.logging import get_logger
from consul_mutex.session import SessionManager

logger = get_logger(__name__)


class ReleaseProtocol:
    """Releases the lock, destroys the session and tidies up the key."""

    def __init__(self, key: LockKey, sessions: SessionManager) -> None:
        self.key = key
        self.sessions = sessions

    async def release(self) -> None:
        """
        Release the lock held by our session.

        The key is only deleted if a read after the release shows it unheld,
        and then only with a check-and-set on that read's index: a key that
        someone else has already re-acquired is left alone.

        Raises:
            ConsulError: If Consul says we did not hold the lock, or on any
                transport or protocol failure
        """
        session_id = await self.sessions.session_id()

        if not await self.key.release(session_id):
            raise ConsulError("Attempt to release lock returned false")
        logger.info("Lock released", key=self.key.key, session=session_id)

        await self.sessions.destroy()

        snapshot = await self.key.read()
        if snapshot is None or snapshot.held:
            return

        if snapshot.index is None:
            logger.warning("No index for unheld lock key, not deleting", key=self.key.key)
            return

        if await self.key.delete(cas=snapshot.index):
            logger.info("Lock key deleted", key=self.key.key, index=snapshot.index)
        else:
            logger.warning(
                "Lock key changed before cleanup, not deleted",
                key=self.key.key,
                index=snapshot.index,
            )
