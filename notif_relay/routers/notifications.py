from __future__ import annotations

from fastapi import APIRouter, Request

from notif_relay.config import settings
from notif_relay.relay.relay import NotifRelay


def build_router(relay: NotifRelay, path: str | None = None) -> APIRouter:
    router = APIRouter(tags=["notifications"])

    async def receive_notification(request: Request):
        return await relay.handle(request)

    router.add_api_route(
        path or settings.notify_path,
        receive_notification,
        methods=["GET", "POST", "PUT"],
        include_in_schema=False,
    )
    return router
