from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from starlette.responses import PlainTextResponse

from notif_relay.domain.errors import RelayError, relay_error_detail
from notif_relay.observability import log_event, record_delivery_failure


OK_BODY = "ok"
SUBSCRIBED_BODY = "subscribed"

ErrorObserver = Callable[[str, int], Any]


def acknowledge(body: str = OK_BODY) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=200)


async def translate_error(
    exc: RelayError,
    *,
    on_error: ErrorObserver | None = None,
    request_id: str | None = None,
) -> PlainTextResponse:
    record_delivery_failure(exc.kind, message=exc.message, status_code=exc.status_code, request_id=request_id)
    if on_error is not None:
        try:
            result = on_error(exc.message, exc.status_code)
            if inspect.isawaitable(result):
                await result
        except Exception as observer_exc:
            log_event(
                "relay_error_observer_failed",
                level=logging.WARNING,
                request_id=request_id,
                relay_error=relay_error_detail(exc),
                error=str(observer_exc),
            )
    return PlainTextResponse(exc.message, status_code=exc.status_code)
