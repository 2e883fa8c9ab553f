"""Cooperative cancellation handle owned by a task."""

import asyncio
from typing import Optional

from .errors import TaskCancelledError


class CancelToken:
    """
    Cooperative cancellation flag.

    Executors are expected to check the token; nothing is forcibly
    interrupted. Cancelling twice keeps the first reason.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TaskCancelledError(self._reason)

    async def wait(self) -> Optional[str]:
        """Block until cancelled and return the reason."""
        await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "active"
        return f"CancelToken({state})"
