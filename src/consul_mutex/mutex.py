"""
A Consul-mediated distributed mutex.

Sometimes you just want some code to run on only one machine in a cluster at
any particular time. ``ConsulMutex`` runs a piece of work while holding a
Consul lock, and cancels that work if the lock is taken away.
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from consul_mutex.acquire import LockAcquirer
from consul_mutex.exceptions import (
    ConsulError,
    LostLockError,
    MutexInternalError,
    ThreadExceptionError,
)
from consul_mutex.keys import KeySnapshot, LockKey
from consul_mutex.logging import get_logger
from consul_mutex.release import ReleaseProtocol
from consul_mutex.session import SessionManager
from consul_mutex.settings import MutexSettings, settings as default_settings
from consul_mutex.transport import ConsulTransport
from consul_mutex.watch import LockWatcher

logger = get_logger(__name__)


class MutexConfig(BaseModel):
    """Immutable per-mutex configuration."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Lock key path under /v1/kv")
    value: str = Field(..., description="Value stored on the key while we hold it")
    consul_url: str = Field("http://localhost:8500", description="Consul agent base URL")
    read_timeout: float = Field(86400.0, gt=0, description="Read timeout in seconds")
    connect_timeout: float = Field(60.0, gt=0, description="Connect timeout in seconds")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v.strip("/").strip():
            raise ValueError("lock key must not be empty")
        return v

    @field_validator("consul_url")
    @classmethod
    def validate_consul_url(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"consul_url must be an http(s) URL with a host, got {v!r}")
        return v


async def _join(task: asyncio.Task) -> BaseException | None:
    """Wait for ``task`` and return its failure, ignoring cancellation."""
    await asyncio.wait({task})
    if task.cancelled():
        return None
    return task.exception()


class ConsulMutex:
    """Run code under the protection of a Consul lock.

    Every mutex created with the same key excludes all other mutexes with the
    same key, across processes and machines. Each ``synchronize`` call uses
    its own Consul session, which is destroyed before the call returns.
    """

    def __init__(
        self,
        key: str,
        value: str | None = None,
        consul_url: str | None = None,
        *,
        settings: MutexSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Create a new Consul-mediated distributed mutex.

        Args:
            key: Path within the Consul KV namespace used as the lock key
            value: Value set on the key while we hold the lock, defaults to
                the local hostname
            consul_url: Where to reach the Consul agent, defaults to
                http://localhost:8500
            settings: Defaults to fall back on, the process settings if omitted
            transport: Optional httpx transport, used to stub Consul in tests
        """
        defaults = settings or default_settings
        self.config = MutexConfig(
            key=key,
            value=value if value is not None else defaults.value,
            consul_url=consul_url or defaults.consul_url,
            read_timeout=defaults.read_timeout,
            connect_timeout=defaults.connect_timeout,
        )
        self.transport = ConsulTransport(
            self.config.consul_url,
            read_timeout=self.config.read_timeout,
            connect_timeout=self.config.connect_timeout,
            transport=transport,
        )

    def __repr__(self) -> str:
        return f"<ConsulMutex key={self.config.key!r} consul_url={self.config.consul_url!r}>"

    async def synchronize(self, work: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run ``work(*args, **kwargs)`` while holding the lock.

        The work may not run at all, or may be cancelled while running if
        the lock is lost. Async work is cancelled at its next ``await``.
        Synchronous work runs in a worker thread so the lock stays watched;
        on lock loss the call raises at once but the thread cannot be
        stopped and runs to completion in the background. Use
        ``consul_mutex.process.run_command`` for work that must be killable
        at any point.

        Returns:
            Whatever the work returned

        Raises:
            TypeError: If ``work`` is not callable
            ConsulError: If talking to Consul fails
            ThreadExceptionError: If the work raised; the original exception
                is available as ``nested``
            LostLockError: If the lock was disrupted while the work ran
            MutexInternalError: On an internal logic error (always a bug)
        """
        if not callable(work):
            raise TypeError(f"No callable passed to {self!r}.synchronize")

        key = LockKey(self.transport, self.config.key)
        sessions = SessionManager(self.transport)
        acquirer = LockAcquirer(key, sessions, self.config.value)

        held = await acquirer.acquire()
        session_id = await sessions.session_id()

        worker = asyncio.create_task(
            self._run_work(work, args, kwargs),
            name=f"consul-mutex-worker:{self.config.key}",
        )
        watcher = asyncio.create_task(
            LockWatcher(key, session_id, held.index).watch(),
            name=f"consul-mutex-watcher:{self.config.key}",
        )

        lost_lock: LostLockError | None = None
        try:
            done, _ = await asyncio.wait({worker, watcher}, return_when=asyncio.FIRST_COMPLETED)

            if worker in done:
                # Work completed; the watcher result is irrelevant.
                watcher.cancel()
            elif watcher in done:
                worker.cancel()
                # The session is useless now; destroying it here also stops
                # the cleanup below from releasing against it.
                await sessions.destroy()
                if watcher.exception() is None:
                    lost_lock = self._lost_lock(watcher.result())
            else:
                raise MutexInternalError(f"Mysterious return value from asyncio.wait: {done!r}")
        finally:
            watcher.cancel()
            worker.cancel()

            worker_error = await _join(worker)
            watcher_error = await _join(watcher)

            if sessions.active:
                await ReleaseProtocol(key, sessions).release()

            if worker_error is not None:
                logger.error("Worker raised exception", key=self.config.key, error=repr(worker_error))
                raise ThreadExceptionError(
                    "Worker thread raised exception", worker_error
                ) from worker_error

            if watcher_error is not None:
                if isinstance(watcher_error, ConsulError):
                    raise watcher_error
                raise MutexInternalError(
                    f"Watcher thread raised exception: {watcher_error} "
                    f"({type(watcher_error).__name__})"
                ) from watcher_error

        if lost_lock is not None:
            raise lost_lock

        return worker.result()

    def _lost_lock(self, snapshot: KeySnapshot | None) -> LostLockError:
        error = LostLockError.from_snapshot(snapshot)
        logger.warning("Lost lock", key=self.config.key, reason=str(error))
        return error

    @staticmethod
    async def _run_work(work: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        if inspect.iscoroutinefunction(work):
            return await work(*args, **kwargs)
        # Off the event loop, so the watcher keeps running.
        result = await asyncio.to_thread(work, *args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result
