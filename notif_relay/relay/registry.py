from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol, Sequence, Union

from notif_relay.domain.normalization import get_handler_name
from notif_relay.models.envelope import DispatchContext, Notification


EVENT_KEY = "event"


class NotificationHandler(Protocol):
    def handle(self, notification: Notification, context: DispatchContext) -> Any: ...


Handler = Union[Callable[[Notification, DispatchContext], Any], NotificationHandler]


def bind_handler(handler: Handler) -> Callable[[Notification, DispatchContext], Any]:
    handle = getattr(handler, "handle", None)
    if callable(handle):
        return handle
    if callable(handler):
        return handler
    raise TypeError(f"Notification handler must be callable or define handle(): {handler!r}")


class HandlerRegistry:
    """Event name -> ordered handlers, plus the always-consulted ``event`` list.

    Registration is additive: handlers are appended, never replaced or removed.
    """

    def __init__(self, handlers: Mapping[str, Handler | Sequence[Handler]] | None = None) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._event_handlers: list[Handler] = []
        if handlers:
            self.add_event_handlers(handlers)

    def add_event_handler(self, event: str, *handlers: Handler) -> HandlerRegistry:
        event_name = get_handler_name(event)
        for handler in handlers:
            bind_handler(handler)
            if event_name == EVENT_KEY:
                self._event_handlers.append(handler)
            else:
                self._handlers.setdefault(event_name, []).append(handler)
        return self

    def add_event_handlers(self, handlers: Mapping[str, Handler | Sequence[Handler]]) -> HandlerRegistry:
        for event, value in handlers.items():
            if isinstance(value, (list, tuple)):
                self.add_event_handler(event, *value)
            else:
                self.add_event_handler(event, value)
        return self

    def handlers_for(self, event_name: str) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(event_name, ()))

    @property
    def event_handlers(self) -> tuple[Handler, ...]:
        return tuple(self._event_handlers)

    def event_names(self) -> list[str]:
        return sorted(self._handlers)
