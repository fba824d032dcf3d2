"""Runs blocking store and storage calls off the event loop."""

import asyncio
import functools
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_blocking(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a synchronous call in the default thread executor.

    The Supabase client and local file writes block; worker slots, the
    reconciler sweep and request handlers share one loop.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
