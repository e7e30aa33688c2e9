from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Mapping

from fastapi import Request

from notif_relay.domain.errors import TenantResolutionFailed
from notif_relay.domain.normalization import first_query_value
from notif_relay.models.envelope import Notification, TenantConfig
from notif_relay.observability import incr_metric, log_event, request_id_for


SHIP_UPDATE_SUBJECT = "ship:update"
_TENANT_QUERY_KEYS = ("organization", "ship", "secret")

ClientFactory = Callable[..., Any]


class ShipCache:
    """Coalescing cache of ship fetches, keyed by ship id.

    The in-flight task is stored rather than its result, so concurrent lookups
    for one ship share a single fetch. ``invalidate`` only drops the entry: a
    lookup that picked up the previous task just before invalidation still
    completes with the older ship. Failed fetches are dropped so the next
    lookup fetches again.
    """

    def __init__(self) -> None:
        self._entries: dict[str, asyncio.Future] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        *,
        force: bool = False,
    ) -> Any:
        if force:
            self.invalidate(key)
        entry = self._entries.get(key)
        if entry is None:
            entry = asyncio.ensure_future(fetcher())
            self._entries[key] = entry
            entry.add_done_callback(partial(self._discard_failed, key))
        # shielded so one cancelled waiter does not cancel the shared fetch
        return await asyncio.shield(entry)

    def _discard_failed(self, key: str, entry: asyncio.Future) -> None:
        if not entry.cancelled() and entry.exception() is None:
            return
        if self._entries.get(key) is entry:
            del self._entries[key]


def extract_tenant_config(query_params: Mapping[str, Any]) -> TenantConfig:
    values: dict[str, str | None] = {}
    for key in _TENANT_QUERY_KEYS:
        if hasattr(query_params, "getlist"):
            raw = query_params.getlist(key) or None
        else:
            raw = query_params.get(key)
        values[key] = first_query_value(raw) or None
    return TenantConfig(**values)


class TenantContextResolver:
    def __init__(self, *, cache: ShipCache, client_factory: ClientFactory) -> None:
        self.cache = cache
        self.client_factory = client_factory

    async def resolve(self, request: Request, notification: Notification | None) -> tuple[Any, Any]:
        """Return ``(client, ship)`` for the request, or ``(None, None)`` without tenant params."""
        config = extract_tenant_config(request.query_params)
        if not config.complete:
            return None, None

        req_id = request_id_for(request)
        force = notification is not None and notification.subject == SHIP_UPDATE_SUBJECT
        client = self.client_factory(
            organization=config.organization,
            ship_id=config.ship,
            secret=config.secret,
        )

        async def _fetch_ship() -> Any:
            incr_metric("relay.tenant.fetch", forced=force)
            log_event("relay_tenant_fetch", request_id=req_id, ship_id=config.ship, forced=force)
            return await client.get(config.ship)

        try:
            ship = await self.cache.get_or_fetch(config.ship, _fetch_ship, force=force)
        except Exception as exc:
            log_event(
                "relay_tenant_fetch_failed",
                level=logging.WARNING,
                request_id=req_id,
                ship_id=config.ship,
                error=str(exc),
            )
            raise TenantResolutionFailed(str(exc) or exc.__class__.__name__) from exc
        return client, ship
