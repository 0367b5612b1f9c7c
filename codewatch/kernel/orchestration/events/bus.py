"""Typed in-process event channel.

Subscribers register for an event class and receive every event that is an
instance of it (so subscribing to ``Event`` receives everything). Handler
failures are isolated: they are passed to an error handler and never reach
the publisher.

Examples
--------
>>> from codewatch.kernel.orchestration.events.events import RuleFailed
>>> bus = EventBus()
>>> seen = []
>>> sub_id = bus.subscribe(RuleFailed, lambda e: seen.append(e.rule))
>>> bus.emit(RuleFailed(rule="no-any", engine="eslint", error="boom"))
>>> seen
['no-any']
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from codewatch.kernel.logging import get_logger
from codewatch.kernel.orchestration.events.events import Event

E = TypeVar("E", bound=Event)

logger = get_logger(__name__)

DEFAULT_HANDLER_TIMEOUT = 5.0

EventHandler = Callable[[Any], Awaitable[None] | None]


class ErrorHandler(Protocol):
    """Protocol for handling errors raised by event handlers."""

    def handle_error(self, error: BaseException, context: dict[str, Any]) -> None:
        """Handle an error that occurred during event processing."""
        ...


class LoggingErrorHandler:
    """Default error handler that logs handler failures."""

    def handle_error(self, error: BaseException, context: dict[str, Any]) -> None:
        logger.warning(
            "Handler {handler} failed for {event_type}: {error}",
            handler=context.get("handler_name", "unknown"),
            event_type=context.get("event_type", "unknown"),
            error=error,
        )


@dataclass(frozen=True, slots=True)
class _Subscription:
    event_type: type[Event]
    handler: EventHandler
    name: str


class EventBus:
    """Publish/subscribe channel keyed by event class.

    Parameters
    ----------
    handler_timeout : float
        Seconds an async handler may run during ``anotify``.
    error_handler : ErrorHandler | None
        Receives handler exceptions; defaults to ``LoggingErrorHandler``.
    """

    def __init__(
        self,
        handler_timeout: float = DEFAULT_HANDLER_TIMEOUT,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._timeout = handler_timeout
        self._error_handler = error_handler or LoggingErrorHandler()
        self._subscriptions: dict[str, _Subscription] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(
        self, event_type: type[E], handler: Callable[[E], Awaitable[None] | None]
    ) -> str:
        """Register ``handler`` for ``event_type`` and its subclasses.

        Returns
        -------
        str
            Subscription id for ``unsubscribe``.
        """
        subscription_id = str(uuid.uuid4())
        self._subscriptions[subscription_id] = _Subscription(
            event_type=event_type,
            handler=handler,
            name=getattr(handler, "__name__", "anonymous_handler"),
        )
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns ``True`` if it existed."""
        return self._subscriptions.pop(subscription_id, None) is not None

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def _matching(self, event: Event) -> list[_Subscription]:
        return [s for s in self._subscriptions.values() if isinstance(event, s.event_type)]

    def _report(self, error: BaseException, sub: _Subscription, event: Event) -> None:
        self._error_handler.handle_error(
            error,
            {"handler_name": sub.name, "event_type": type(event).__name__},
        )

    async def anotify(self, event: Event) -> None:
        """Deliver ``event`` to all matching handlers and wait for them."""
        logger.debug(event.log_message())
        subs = self._matching(event)
        if not subs:
            return

        async def _deliver(sub: _Subscription) -> None:
            try:
                outcome = sub.handler(event)
                if inspect.isawaitable(outcome):
                    await asyncio.wait_for(outcome, timeout=self._timeout)
            except Exception as e:  # noqa: BLE001
                self._report(e, sub, event)

        await asyncio.gather(*(_deliver(s) for s in subs), return_exceptions=True)

    def emit(self, event: Event) -> None:
        """Deliver ``event`` without awaiting.

        Sync handlers run inline. Coroutine handlers are scheduled on the
        running loop and can be awaited with ``adrain``; without a running
        loop they are skipped with a warning.
        """
        logger.debug(event.log_message())
        for sub in self._matching(event):
            if inspect.iscoroutinefunction(sub.handler):
                self._schedule(sub, event)
                continue
            try:
                outcome = sub.handler(event)
            except Exception as e:  # noqa: BLE001
                self._report(e, sub, event)
                continue
            if inspect.isawaitable(outcome):
                self._schedule_awaitable(outcome, sub, event)

    def _schedule(self, sub: _Subscription, event: Event) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; async handler {handler} skipped for {event_type}",
                handler=sub.name,
                event_type=type(event).__name__,
            )
            return
        self._track(loop, sub.handler(event), sub, event)  # type: ignore[arg-type]

    def _schedule_awaitable(
        self, outcome: Awaitable[None], sub: _Subscription, event: Event
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(outcome):
                outcome.close()
            logger.warning(
                "No running event loop; awaitable from {handler} dropped for {event_type}",
                handler=sub.name,
                event_type=type(event).__name__,
            )
            return
        self._track(loop, outcome, sub, event)

    def _track(
        self,
        loop: asyncio.AbstractEventLoop,
        outcome: Awaitable[None],
        sub: _Subscription,
        event: Event,
    ) -> None:
        async def _run() -> None:
            try:
                await asyncio.wait_for(outcome, timeout=self._timeout)
            except Exception as e:  # noqa: BLE001
                self._report(e, sub, event)

        task = loop.create_task(_run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def adrain(self) -> None:
        """Wait for async handlers scheduled by ``emit``."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
