#!/usr/bin/env python
"""
Command-line interface for consul-mutex.
"""

import asyncio
import sys
from dataclasses import dataclass

import click

from consul_mutex.exceptions import ConsulError, LostLockError, ThreadExceptionError
from consul_mutex.keys import LockKey
from consul_mutex.logging import setup_logging
from consul_mutex.mutex import ConsulMutex
from consul_mutex.process import run_command
from consul_mutex.settings import LogLevel, settings
from consul_mutex.transport import ConsulTransport

EXIT_WORK_FAILED = 1
EXIT_CONSUL_ERROR = 2
EXIT_LOST_LOCK = 3


@dataclass
class CLIOptions:
    """Global options shared by every command."""

    consul_url: str
    value: str | None


@click.group()
@click.option("--consul-url", default=lambda: settings.consul_url, show_default="settings", help="Consul agent URL")
@click.option("--value", default=None, help="Value to store on the lock key (default: hostname)")
@click.option(
    "--log-level",
    type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
    default=lambda: settings.log_level.value,
    help="Log level",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default=lambda: settings.log_format,
    help="Log format",
)
@click.pass_context
def cli(ctx: click.Context, consul_url: str, value: str | None, log_level: str, log_format: str) -> None:
    """Consul distributed mutex CLI."""
    setup_logging(log_level, log_format)
    ctx.obj = CLIOptions(consul_url=consul_url, value=value)


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("key")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def run(options: CLIOptions, key: str, command: tuple[str, ...]) -> None:
    """Run COMMAND while holding the lock on KEY.

    The command is killed if the lock is lost. Exits with the command's
    exit status.
    """
    mutex = ConsulMutex(key, value=options.value, consul_url=options.consul_url)

    try:
        returncode = asyncio.run(mutex.synchronize(run_command, list(command)))
    except LostLockError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_LOST_LOCK)
    except ConsulError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_CONSUL_ERROR)
    except ThreadExceptionError as e:
        click.echo(f"Error: {e}: {e.nested}", err=True)
        sys.exit(EXIT_WORK_FAILED)

    sys.exit(returncode)


@cli.command()
@click.argument("key")
@click.pass_obj
def status(options: CLIOptions, key: str) -> None:
    """Show who currently holds the lock on KEY."""
    transport = ConsulTransport(
        options.consul_url,
        read_timeout=settings.read_timeout,
        connect_timeout=settings.connect_timeout,
    )

    try:
        snapshot = asyncio.run(LockKey(transport, key).read())
    except ConsulError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_CONSUL_ERROR)

    if snapshot is None or not snapshot.held:
        click.echo("free")
        return

    click.echo(f"held by session '{snapshot.session}'")
    if snapshot.value is not None:
        click.echo(f"value: {snapshot.value.decode('utf-8', errors='replace')}")


if __name__ == "__main__":
    cli()
