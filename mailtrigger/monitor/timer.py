"""Interruptible waiting.

Every wait in the engine (poll ticks, reconnect backoff) goes through a
Timer so that stop() wakes it at once and tests can skip real time.
"""

import asyncio
from typing import Protocol


class Timer(Protocol):
    async def sleep(self, seconds: float, stop: asyncio.Event) -> bool:
        """Wait up to seconds; return True if stop was set."""
        ...


class AsyncioTimer:
    """Timer using the event loop clock."""

    async def sleep(self, seconds: float, stop: asyncio.Event) -> bool:
        if stop.is_set():
            return True
        try:
            await asyncio.wait_for(stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
