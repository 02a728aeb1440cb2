"""Mutex-related exceptions."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typings only
    from consul_mutex.keys import KeySnapshot


class MutexError(Exception):
    """Base exception for distributed mutex errors."""

    pass


class ConsulError(MutexError):
    """Raised when something goes wrong talking to Consul.

    Covers transport failures (timeouts, refused connections, name
    resolution), malformed HTTP responses, unexpected status codes and
    response bodies that do not match the Consul HTTP API.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.operation = operation


class ThreadExceptionError(MutexError):
    """Raised when the protected work itself failed.

    The exception which caused the work to terminate is available as
    ``nested`` (and as ``__cause__``).
    """

    def __init__(self, message: str, nested: BaseException):
        super().__init__(message)
        self.nested = nested


class LostLockError(MutexError):
    """Raised when the lock was taken away while the work was running.

    The work has been cancelled. Nothing can be assumed about state the work
    did not explicitly clean up in ``finally`` blocks.
    """

    KEY_DELETED = "Lost lock, key deleted!"
    NO_SESSION = "Lost lock, no active session!"

    def __init__(self, message: str, snapshot: "KeySnapshot | None" = None):
        super().__init__(message)
        self.snapshot = snapshot

    @classmethod
    def from_snapshot(cls, snapshot: "KeySnapshot | None") -> "LostLockError":
        """Build the error describing what the watcher saw."""
        if snapshot is None:
            return cls(cls.KEY_DELETED, snapshot)
        if snapshot.session is None:
            return cls(cls.NO_SESSION, snapshot)
        return cls(f"Lost lock to session '{snapshot.session}'", snapshot)


class MutexInternalError(RuntimeError):
    """Internal logic error. Always a bug in consul_mutex, please report."""

    pass
