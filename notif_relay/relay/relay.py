from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence

from fastapi import Request
from starlette.responses import Response

from notif_relay.config import Settings, settings
from notif_relay.domain.errors import InternalError, RelayError
from notif_relay.domain.normalization import get_handler_name
from notif_relay.models.envelope import DispatchContext
from notif_relay.observability import incr_metric, log_event, request_id_for
from notif_relay.providers.hull.client import HullClient
from notif_relay.relay.body import read_envelope
from notif_relay.relay.dispatcher import dispatch
from notif_relay.relay.registry import Handler, HandlerRegistry
from notif_relay.relay.responses import SUBSCRIBED_BODY, ErrorObserver, acknowledge, translate_error
from notif_relay.relay.tenancy import ClientFactory, ShipCache, TenantContextResolver
from notif_relay.relay.verification import SignatureVerifier


class NotifRelay:
    """SNS notification relay: verify, resolve the tenant ship, fan out to handlers."""

    def __init__(
        self,
        handlers: Mapping[str, Handler | Sequence[Handler]] | None = None,
        *,
        on_subscribe: Callable[[Request], Any] | None = None,
        on_error: ErrorObserver | None = None,
        group_traits: bool | None = None,
        signature_mode: str | None = None,
        cache: ShipCache | None = None,
        client_factory: ClientFactory | None = None,
        config: Settings = settings,
    ) -> None:
        self.registry = HandlerRegistry(handlers)
        self.cache = cache if cache is not None else ShipCache()
        self.on_error = on_error
        self.verifier = SignatureVerifier(
            mode=signature_mode,
            group_traits=group_traits,
            on_subscribe=on_subscribe,
            config=config,
        )
        self.tenants = TenantContextResolver(
            cache=self.cache,
            client_factory=client_factory or HullClient,
        )

    def add_event_handler(self, event: str, *handlers: Handler) -> NotifRelay:
        self.registry.add_event_handler(event, *handlers)
        return self

    def add_event_handlers(self, handlers: Mapping[str, Handler | Sequence[Handler]]) -> NotifRelay:
        self.registry.add_event_handlers(handlers)
        return self

    async def handle(self, request: Request) -> Response:
        req_id = request_id_for(request)
        incr_metric("sns.deliveries.received")
        try:
            envelope = await read_envelope(request)
            notification = await self.verifier.verify(envelope, request)
            if notification is None:
                return acknowledge(SUBSCRIBED_BODY)

            event_name = get_handler_name(notification.subject)
            client, ship = await self.tenants.resolve(request, notification)
            context = DispatchContext(request=request, ship=ship, client=client)
            invoked = await dispatch(self.registry, event_name, notification, context)
        except RelayError as exc:
            return await translate_error(exc, on_error=self.on_error, request_id=req_id)
        except Exception as exc:
            log_event("relay_internal_error", level=logging.ERROR, request_id=req_id, error=repr(exc))
            internal = InternalError(str(exc) or exc.__class__.__name__)
            return await translate_error(internal, on_error=self.on_error, request_id=req_id)

        incr_metric("relay.deliveries.processed", event_name=event_name)
        log_event(
            "relay_delivery_processed",
            request_id=req_id,
            event_name=event_name,
            handlers_invoked=invoked,
            has_ship=ship is not None,
        )
        return acknowledge()
