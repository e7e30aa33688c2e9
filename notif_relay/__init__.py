from notif_relay.domain.errors import (
    HandlerFailed,
    InternalError,
    InvalidMessage,
    MalformedBody,
    RelayError,
    SignatureInvalid,
    SubscriptionFailed,
    TenantResolutionFailed,
    UnrecognizedType,
)
from notif_relay.models.envelope import DispatchContext, Notification
from notif_relay.relay.registry import HandlerRegistry
from notif_relay.relay.relay import NotifRelay
from notif_relay.relay.tenancy import ShipCache

__all__ = [
    "DispatchContext",
    "HandlerFailed",
    "HandlerRegistry",
    "InternalError",
    "InvalidMessage",
    "MalformedBody",
    "Notification",
    "NotifRelay",
    "RelayError",
    "ShipCache",
    "SignatureInvalid",
    "SubscriptionFailed",
    "TenantResolutionFailed",
    "UnrecognizedType",
]
