"""In-process publish/subscribe for engine events."""

import asyncio
import time
from collections import Counter, defaultdict, deque
from typing import Any, Callable, Dict, List, Optional, Type

from ..config.logging import get_logger
from .events import DomainEvent

logger = get_logger(__name__)

Handler = Callable[[DomainEvent], Any]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """
    Routes engine events to subscribed handlers.

    A handler subscribed to an event class also receives its subclasses, so
    subscribing to ``DomainEvent`` observes everything. Coroutine handlers
    are awaited on the loop; plain functions run in a worker thread. A
    handler that raises is logged and counted, and the remaining handlers
    still run.
    """

    def __init__(self, name: str = "default", max_history_size: int = 1000):
        self.name = name
        self.logger = logger.bind(event_bus=name)
        self._handlers: Dict[Type[DomainEvent], List[Handler]] = defaultdict(list)
        self._history: deque = deque(maxlen=max_history_size)
        self._counters: Counter = Counter()
        self._last_event_time: Optional[str] = None

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)
        self.logger.debug(
            "Handler subscribed",
            event_type=event_type.__name__,
            handler=_handler_name(handler),
        )

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Handler) -> bool:
        """Remove a handler; returns False if it was not subscribed."""
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[Handler]:
        """Handlers registered for the event class or any of its bases."""
        return [
            handler
            for klass in event_type.__mro__
            for handler in self._handlers.get(klass, [])
        ]

    async def publish(self, event: DomainEvent) -> Dict[str, Any]:
        """
        Deliver an event to every matching handler and wait for them.

        Returns:
            Counts of handlers run and failed, and the delivery time
        """
        started = time.perf_counter()
        event_name = type(event).__name__

        self._counters["events_published"] += 1
        self._last_event_time = event.timestamp.isoformat()
        self._history.append(
            {
                "event_type": event_name,
                "event_id": event.event_id,
                "timestamp": self._last_event_time,
            }
        )

        handlers = self.handlers_for(type(event))
        outcomes = await asyncio.gather(*(self._run_handler(h, event) for h in handlers))
        failed = outcomes.count(False)

        self._counters["handlers_executed"] += len(handlers)
        self._counters["errors_count"] += failed
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        if handlers:
            self.logger.debug(
                "Event delivered",
                event_type=event_name,
                event_id=event.event_id,
                handlers=len(handlers),
                failed=failed,
                elapsed_ms=elapsed_ms,
            )

        return {
            "event_id": event.event_id,
            "handlers_executed": len(handlers),
            "successful_handlers": len(handlers) - failed,
            "failed_handlers": failed,
            "execution_time_ms": elapsed_ms,
        }

    async def _run_handler(self, handler: Handler, event: DomainEvent) -> bool:
        try:
            if asyncio.iscoroutinefunction(handler):
                await handler(event)
            else:
                await asyncio.to_thread(handler, event)
        except Exception as e:
            self.logger.error(
                "Event handler failed",
                event_type=type(event).__name__,
                handler=_handler_name(handler),
                error=str(e),
                exc_info=True,
            )
            return False
        return True

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "events_published": self._counters["events_published"],
            "handlers_executed": self._counters["handlers_executed"],
            "errors_count": self._counters["errors_count"],
            "last_event_time": self._last_event_time,
            "registered_event_types": sum(1 for h in self._handlers.values() if h),
            "total_handlers": sum(len(h) for h in self._handlers.values()),
            "history_size": len(self._history),
        }

    def get_event_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent deliveries, oldest first."""
        return list(self._history)[-limit:]


_global_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Process-wide event bus, created on first use."""
    global _global_event_bus

    if _global_event_bus is None:
        _global_event_bus = EventBus("global")
    return _global_event_bus


def set_event_bus(event_bus: Optional[EventBus]) -> None:
    global _global_event_bus
    _global_event_bus = event_bus
