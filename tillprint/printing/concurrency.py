"""Coordination of concurrent print requests on one event loop.

Both registries are owned by the caller (the FastAPI app keeps one of each
on ``app.state``) rather than living in module globals.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from contextlib import asynccontextmanager
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlightRequests:
    """Coalesces identical requests while one is running.

    A second caller with the same signature awaits the first caller's
    result instead of starting another print. The entry is evicted as soon
    as the request completes, so a later retry runs again.
    """

    def __init__(self):
        self._pending: dict[Hashable, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        """Run factory() unless an identical request is already running.

        Args:
            key: Request signature.
            factory: Zero-argument coroutine function doing the work.

        Returns:
            T: Result of the (possibly shared) request.
        """
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda _: self._pending.pop(key, None))
        else:
            logger.info(f"Joining in-flight print request {key}")
        return await asyncio.shield(task)


class DeviceLocks:
    """One lock per (tenant, device address).

    The USB open...close cycle is not reentrant, so sends to the same
    device must never interleave.
    """

    def __init__(self):
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def get(self, tenant_id: str, device_address: str) -> asyncio.Lock:
        key = (tenant_id, device_address)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, tenant_id: str, device_address: str):
        """Hold the device exclusively for the duration of the block."""
        lock = self.get(tenant_id, device_address)
        if lock.locked():
            logger.info(f"Waiting for printer {device_address} to finish the previous job")
        async with lock:
            yield
