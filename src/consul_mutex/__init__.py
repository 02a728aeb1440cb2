"""
consul-mutex - a Consul-mediated distributed mutex.

Runs a piece of work on at most one process in a cluster at a time, using a
Consul session lock, and cancels the work if the lock is lost:

    mutex = ConsulMutex("service/cron/lock")
    result = await mutex.synchronize(do_work)
"""

__version__ = "1.0.0"

from consul_mutex.exceptions import (
    ConsulError,
    LostLockError,
    MutexError,
    MutexInternalError,
    ThreadExceptionError,
)
from consul_mutex.keys import KeySnapshot
from consul_mutex.mutex import ConsulMutex, MutexConfig
from consul_mutex.process import run_command

__all__ = [
    "ConsulError",
    "ConsulMutex",
    "KeySnapshot",
    "LostLockError",
    "MutexConfig",
    "MutexError",
    "MutexInternalError",
    "ThreadExceptionError",
    "run_command",
]
