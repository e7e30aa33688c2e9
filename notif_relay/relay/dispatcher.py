from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Coroutine

from notif_relay.domain.errors import HandlerFailed, InternalError, handler_error_status
from notif_relay.models.envelope import DispatchContext, Notification
from notif_relay.observability import incr_metric, log_event, request_id_for
from notif_relay.relay.registry import EVENT_KEY, Handler, HandlerRegistry, bind_handler


USER_UPDATE_EVENT = "user:update"


async def _invoke(handler: Handler, notification: Notification, context: DispatchContext) -> Any:
    result = bind_handler(handler)(notification, context)
    if inspect.isawaitable(result):
        result = await result
    return result


def expand_user_events(notification: Notification) -> list[Notification]:
    """One synthesized ``event`` notification per entry of a batched user update."""
    message = notification.message
    if not isinstance(message, dict):
        return []
    events = message.get("events") or []
    if not isinstance(events, list):
        raise TypeError(f"user:update events must be a list, got {type(events).__name__}")
    segments = message.get("segments")
    if segments is None:
        segments = []
    return [
        Notification(
            subject=EVENT_KEY,
            message={"user": message.get("user"), "segments": segments, "event": event},
            timestamp=notification.timestamp,
        )
        for event in events
    ]


def build_invocations(
    registry: HandlerRegistry,
    event_name: str,
    notification: Notification,
    context: DispatchContext,
) -> list[Coroutine[Any, Any, Any]]:
    event_handlers = registry.event_handlers
    sub_notifications: list[Notification] = []
    if event_handlers and event_name == USER_UPDATE_EVENT:
        sub_notifications = expand_user_events(notification)

    invocations = [_invoke(handler, notification, context) for handler in registry.handlers_for(event_name)]
    for sub_notification in sub_notifications:
        invocations.extend(_invoke(handler, sub_notification, context) for handler in event_handlers)
    return invocations


async def dispatch(
    registry: HandlerRegistry,
    event_name: str,
    notification: Notification,
    context: DispatchContext,
) -> int:
    """Run every matching handler concurrently and wait for all of them to settle.

    The first failure in invocation order decides the outcome; the remaining
    handlers still run to completion. Returns the number of invocations.
    """
    try:
        invocations = build_invocations(registry, event_name, notification, context)
    except Exception as exc:
        raise InternalError(str(exc) or exc.__class__.__name__) from exc
    if not invocations:
        return 0

    req_id = request_id_for(context.request)
    incr_metric("relay.handlers.invoked", value=len(invocations), event_name=event_name)
    outcomes = await asyncio.gather(*invocations, return_exceptions=True)
    failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
    if not failures:
        return len(invocations)

    first = failures[0]
    log_event(
        "relay_handlers_failed",
        level=logging.WARNING,
        request_id=req_id,
        event_name=event_name,
        invoked=len(invocations),
        failed=len(failures),
        error=str(first),
    )
    raise HandlerFailed(str(first) or first.__class__.__name__, handler_error_status(first)) from first
