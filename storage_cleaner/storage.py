"""
Storage medium contract and the glue that lets a synchronous engine talk to
media whose methods may return plain values or awaitables.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Set, Union

logger = logging.getLogger(__name__)

MaybeAwaitable = Union[Any, Awaitable[Any]]

class StorageAdapter(Protocol):
    """
    Any key-value string store. Each method may answer directly or with an awaitable,
    and `set` may raise CapacityExceededError.
    """
    def get(self, key: str) -> MaybeAwaitable: ...
    def set(self, key: str, value: str) -> MaybeAwaitable: ...
    def remove(self, key: str) -> MaybeAwaitable: ...
    def keys(self) -> MaybeAwaitable: ...
    def total_size(self) -> MaybeAwaitable: ...
    def item_size(self, key: str) -> MaybeAwaitable: ...
    def clear(self) -> MaybeAwaitable: ...


# strong references to fire-and-forget writes scheduled on a running loop
_background: Set[asyncio.Task] = set()

def _discard(result: Any) -> None:
    if inspect.iscoroutine(result):
        result.close()      # silence "never awaited"

def call_sync(fn: Callable[..., Any], *args, default: Any = None) -> Any:
    """
    Call a medium method from a synchronous code path.
    An awaitable answer is not available yet -> `default`; an exception -> `default`.
    """
    try:
        result = fn(*args)
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.warning(f"Storage call {getattr(fn, '__name__', fn)}{args} failed: {e}")
        return default
    if inspect.isawaitable(result):
        _discard(result)
        logger.debug(f"Storage call {getattr(fn, '__name__', fn)}{args} is asynchronous, using default")
        return default
    return result

async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable

def _log_failure(task: asyncio.Task) -> None:
    _background.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"Background storage write failed: {task.exception()}")

def settle(result: MaybeAwaitable) -> Optional[Any]:
    """
    Drive a medium write to completion.
    - plain value: returned as is
    - awaitable inside a running loop: scheduled as a task
    - awaitable without a loop: run to completion here
    """
    if not inspect.isawaitable(result):
        return result
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_await(result))
    task = loop.create_task(_await(result))
    _background.add(task)
    task.add_done_callback(_log_failure)
    return task

async def resolve(result: MaybeAwaitable) -> Any:
    """
    Await the answer if the medium returned an awaitable.
    """
    if inspect.isawaitable(result):
        return await result
    return result

async def drain() -> None:
    """
    Wait for the background writes `settle` scheduled on the running loop.
    """
    loop = asyncio.get_running_loop()
    while True:
        pending = [task for task in _background if task.get_loop() is loop and not task.done()]
        if not pending:
            return
        await asyncio.gather(*pending, return_exceptions=True)

def as_key_list(keys: Any) -> List[str]:
    """
    Normalise an enumeration result; anything that is not a sequence of keys -> []
    """
    if keys is None or isinstance(keys, (str, bytes)):
        return []
    try:
        return [k for k in keys if isinstance(k, str)]
    except TypeError:
        return []
