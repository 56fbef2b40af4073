"""One timeout wrapper for every call made to an external collaborator."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, TypeVar

from newsbird.errors import CallTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_timeout(
    fn: Callable[..., T],
    *args: Any,
    timeout: float | None,
    label: str = "",
    **kwargs: Any,
) -> T:
    """Run ``fn(*args, **kwargs)`` and give up after *timeout* seconds.

    Raises :class:`CallTimeoutError` on expiry. Exceptions raised by *fn*
    propagate unchanged. ``timeout=None`` calls *fn* directly. The worker
    thread of a timed-out call is abandoned, not killed.
    """
    if timeout is None:
        return fn(*args, **kwargs)

    name = label or getattr(fn, "__qualname__", repr(fn))
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="newsbird-call")
    future = executor.submit(fn, *args, **kwargs)
    try:
        done, _ = wait([future], timeout=timeout)
        if not done:
            future.cancel()
            logger.warning("%s timed out after %.1fs", name, timeout)
            raise CallTimeoutError(name, timeout)
        return future.result()
    finally:
        executor.shutdown(wait=False)
