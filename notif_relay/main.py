from uuid import uuid4

from fastapi import FastAPI, Request

from notif_relay.observability import metrics_snapshot
from notif_relay.relay.relay import NotifRelay
from notif_relay.routers.notifications import build_router


def create_app(relay: NotifRelay | None = None) -> FastAPI:
    relay = relay or NotifRelay()
    app = FastAPI(title="Ship Notification Relay", version="0.1.0")
    app.state.relay = relay

    @app.middleware("http")
    async def attach_request_id(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Amz-Sns-Message-Id")
            or str(uuid4())
        )
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(build_router(relay))

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "ship-notif-relay"}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/internal/metrics")
    async def metrics():
        return {"counters": metrics_snapshot()}

    return app


app = create_app()
