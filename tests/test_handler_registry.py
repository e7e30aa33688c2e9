from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from notif_relay.domain.errors import HandlerFailed, InternalError
from notif_relay.models.envelope import DispatchContext, Notification
from notif_relay.relay.dispatcher import dispatch, expand_user_events
from notif_relay.relay.registry import HandlerRegistry


def _noop(notification, context):
    return None


def test_registration_accumulates_under_normalized_names():
    registry = HandlerRegistry({"user_report:update": _noop})
    registry.add_event_handler("user:update", _noop).add_event_handler("users_segment:delete", _noop, _noop)

    assert registry.handlers_for("user:update") == (_noop, _noop)
    assert registry.handlers_for("segment:delete") == (_noop, _noop)
    assert registry.handlers_for("ship:update") == ()
    assert registry.event_names() == ["segment:delete", "user:update"]


def test_event_key_is_kept_apart_from_regular_names():
    registry = HandlerRegistry()
    registry.add_event_handlers({"event": [_noop, _noop], "widget:create": _noop})

    assert registry.event_handlers == (_noop, _noop)
    assert registry.handlers_for("event") == ()
    assert registry.event_names() == ["widget:create"]


def test_non_callable_handler_is_rejected():
    with pytest.raises(TypeError):
        HandlerRegistry().add_event_handler("user:update", object())


def test_expand_user_events_synthesizes_one_notification_per_event():
    timestamp = datetime(2016, 5, 25, tzinfo=timezone.utc)
    notification = Notification(
        subject="user_report:update",
        message={"user": {"id": "u-1"}, "segments": [{"id": "s-1"}], "events": [{"event": "a"}, {"event": "b"}]},
        timestamp=timestamp,
    )

    expanded = expand_user_events(notification)

    assert [n.message["event"] for n in expanded] == [{"event": "a"}, {"event": "b"}]
    assert all(n.subject == "event" and n.timestamp == timestamp for n in expanded)
    assert all(n.message["segments"] == [{"id": "s-1"}] for n in expanded)


def test_dispatch_runs_n_times_m_event_invocations():
    seen: list[tuple[str, str]] = []

    def make_handler(label):
        async def handler(notification, context):
            await asyncio.sleep(0)
            seen.append((label, notification.message["event"]["event"]))
        return handler

    registry = HandlerRegistry({"event": [make_handler("m1"), make_handler("m2"), make_handler("m3")]})
    notification = Notification(
        subject="user_report:update",
        message={"user": {"id": "u-1"}, "events": [{"event": "a"}, {"event": "b"}]},
    )

    invoked = asyncio.run(dispatch(registry, "user:update", notification, DispatchContext(request=None)))

    assert invoked == 6
    assert sorted(seen) == sorted((m, e) for m in ("m1", "m2", "m3") for e in ("a", "b"))


def test_dispatch_without_handlers_is_a_noop():
    notification = Notification(subject="widget:create", message={})

    assert asyncio.run(dispatch(HandlerRegistry(), "widget:create", notification, DispatchContext(request=None))) == 0


def test_dispatch_reports_first_failure_in_invocation_order():
    async def first(notification, context):
        await asyncio.sleep(0.01)
        raise RuntimeError("first failure")

    async def second(notification, context):
        raise RuntimeError("second failure")

    registry = HandlerRegistry({"widget:create": [first, second]})
    notification = Notification(subject="widget:create", message={})

    with pytest.raises(HandlerFailed) as exc_info:
        asyncio.run(dispatch(registry, "widget:create", notification, DispatchContext(request=None)))
    assert exc_info.value.message == "first failure"
    assert exc_info.value.status_code == 400


def test_dispatch_with_non_list_events_is_internal_error():
    registry = HandlerRegistry({"event": _noop})
    notification = Notification(subject="user_report:update", message={"events": "a,b"})

    with pytest.raises(InternalError) as exc_info:
        asyncio.run(dispatch(registry, "user:update", notification, DispatchContext(request=None)))
    assert exc_info.value.status_code == 500
