"""Run an external command as killable mutex work."""

import asyncio
from collections.abc import Mapping, Sequence

from consul_mutex.logging import get_logger

logger = get_logger(__name__)


async def run_command(
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> int:
    """
    Run a command to completion and return its exit status.

    Unlike in-process coroutines, a child process can be stopped at any
    instant: if this coroutine is cancelled (e.g. because the mutex lost its
    lock) the child is killed and reaped before the cancellation propagates.

    Args:
        argv: Program and arguments
        env: Environment for the child, inherited if omitted
        cwd: Working directory for the child

    Returns:
        The child's exit status
    """
    if not argv:
        raise ValueError("No command given")

    process = await asyncio.create_subprocess_exec(
        *argv,
        env=dict(env) if env is not None else None,
        cwd=cwd,
    )
    logger.info("Command started", command=argv[0], pid=process.pid)

    try:
        returncode = await process.wait()
    except asyncio.CancelledError:
        if process.returncode is None:
            logger.warning("Killing command", command=argv[0], pid=process.pid)
            process.kill()
            await process.wait()
        raise

    logger.info("Command exited", command=argv[0], pid=process.pid, returncode=returncode)
    return returncode
