"""Helpers for calling collaborators that may be sync or async."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any


async def call_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Await *func* if it is a coroutine function, else run it in a worker thread."""
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
