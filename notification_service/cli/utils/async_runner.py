"""Run async command bodies from Click."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

import click

T = TypeVar("T")


def coro(f: Callable[..., Awaitable[T]]) -> Callable[..., T]:
    """Make an async Click command synchronous.

    Ctrl-C while the loop runs (e.g. ``listen``) aborts the command
    instead of printing a traceback.

    Usage:
        @cli.command()
        @coro
        async def send():
            ...
    """

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return asyncio.run(f(*args, **kwargs))
        except KeyboardInterrupt as e:
            raise click.Abort from e

    return wrapper
