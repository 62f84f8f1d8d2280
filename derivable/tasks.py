"""
Asynchronous primitives used by the calculation engine.

The engine never runs a pass inline: it defers the pass to the next turn of the
running event loop so that every synchronous mutation made in the same step ends
up in a single pass. Everything else here is a thin vocabulary over ``asyncio``
futures ("is it settled", "settle quietly", "await a mapping").
"""

import asyncio
import inspect
from typing import Any, Awaitable, Coroutine, Dict, Mapping

from .errors import NoEventLoopError


def _running_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise NoEventLoopError(
            "Models calculate on the running event loop; create them inside "
            "a coroutine (for example under asyncio.run())"
        ) from None


def defer(coroutine: Coroutine) -> asyncio.Task:
    """Schedule ``coroutine`` to start on the next loop turn."""
    try:
        loop = _running_loop()
    except NoEventLoopError:
        coroutine.close()
        raise
    return loop.create_task(coroutine)


def settled(value: Any = None) -> asyncio.Future:
    """Return a future that is already resolved with ``value``."""
    future = _running_loop().create_future()
    future.set_result(value)
    return future


def is_pending(result: Any) -> bool:
    """Whether a hook returned an asynchronous computation instead of a value."""
    return inspect.isawaitable(result)


def is_fulfilled(result: Any) -> bool:
    """Whether ``result`` is a future that already settled successfully."""
    if result is None:
        return True
    if not asyncio.isfuture(result) or not result.done():
        return False
    return not result.cancelled() and result.exception() is None


def quietly(future: asyncio.Future) -> asyncio.Future:
    """Return a future resolving to ``None`` once ``future`` settles, even on failure."""
    if future.done():
        if not future.cancelled():
            future.exception()
        return settled()

    result = future.get_loop().create_future()

    def _settle(source: asyncio.Future) -> None:
        if not source.cancelled():
            source.exception()
        if not result.done():
            result.set_result(None)

    future.add_done_callback(_settle)
    return result


async def gather_mapping(awaitables: Mapping[str, Awaitable]) -> Dict[str, Any]:
    """Await every value of ``awaitables`` and return the results under the same keys."""
    if not awaitables:
        return {}
    keys = list(awaitables)
    values = await asyncio.gather(*(awaitables[key] for key in keys))
    return dict(zip(keys, values))
