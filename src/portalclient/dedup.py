from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from portalclient.telemetry import Telemetry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _canonical(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
    payload: Any = list(args)
    if kwargs:
        payload = {"args": payload, "kwargs": kwargs}
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def cache_key(operation: str, *args: Any, **kwargs: Any) -> str:
    """Build ``"<operation>:<canonical json>"`` from every result-affecting argument."""
    if not operation:
        raise ValueError("operation must be a non-empty string")
    return f"{operation}:{_canonical(args, kwargs)}"


def hashed_cache_key(operation: str, *args: Any, **kwargs: Any) -> str:
    """Like :func:`cache_key`, but digests the arguments so secrets stay out of logs."""
    if not operation:
        raise ValueError("operation must be a non-empty string")
    digest = hashlib.sha256(_canonical(args, kwargs).encode("utf-8")).hexdigest()
    return f"{operation}:{digest}"


def operation_of(key: str) -> str:
    return key.split(":", 1)[0]


class RequestDeduplicator:
    """Collapse concurrent calls sharing a key into one underlying operation.

    The registry maps each key to the task running its operation. The task
    removes its own entry before it settles, so every caller that awaited it
    sees the shared outcome and any call made after settlement starts over.
    Check-and-insert in :meth:`run` never awaits, which is what keeps it
    race-free on a single event loop without a lock.
    """

    def __init__(self, telemetry: Telemetry | None = None) -> None:
        self._pending: dict[str, asyncio.Task[Any]] = {}
        self._telemetry = telemetry or Telemetry()

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def run(self, key: str, operation_factory: Callable[[], Awaitable[T]]) -> T:
        if not key:
            raise ValueError("key must be a non-empty string")

        task = self._pending.get(key)
        shared = task is not None
        if task is None:
            awaitable = operation_factory()
            task = asyncio.ensure_future(self._settle(key, awaitable))
            self._pending[key] = task
            self._telemetry.set_in_flight(len(self._pending))
            logger.debug("Started operation for key %r", key)
        else:
            logger.debug("Joined in-flight operation for key %r", key)
        self._telemetry.record_dedup_call(operation_of(key), shared=shared)

        # Cancelling one waiter must not cancel the operation for the others.
        return await asyncio.shield(task)

    async def _settle(self, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]
            self._telemetry.set_in_flight(len(self._pending))

    def clear(self) -> None:
        """Forget every registration. Running operations are left to finish."""
        self._pending.clear()
        self._telemetry.set_in_flight(0)
