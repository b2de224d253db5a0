"""Typed publish/subscribe channels shared between console components."""

from __future__ import annotations

import inspect
import itertools
from typing import Any, Awaitable, Callable, Dict, Generic, TypeVar, Union

from meter_console.core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Union[None, Awaitable[None]]]


class SignalChannel(Generic[T]):
    """A named channel carrying one payload type.

    Handlers may be plain functions or coroutine functions. A failing handler
    is logged and does not prevent the remaining handlers from running.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: Dict[int, Handler] = {}
        self._ids = itertools.count()

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register a handler and return a function that removes it."""
        token = next(self._ids)
        self._handlers[token] = handler

        def unsubscribe() -> None:
            self._handlers.pop(token, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, payload: T) -> int:
        """Deliver payload to every handler in registration order.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in list(self._handlers.values()):
            try:
                result: Any = handler(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as exc:
                logger.error(
                    "signal_handler_failed",
                    signal=self.name,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(exc),
                    error_type=type(exc).__name__,
                    message="Signal handler raised, continuing with remaining handlers",
                    exc_info=True,
                )
        logger.debug(
            "signal_published",
            signal=self.name,
            handlers=len(self._handlers),
            delivered=delivered,
        )
        return delivered


SETTINGS_RESTORED = "settings-restored"
