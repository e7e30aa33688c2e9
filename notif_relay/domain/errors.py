from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Terminal pipeline failure carrying the transport status to reply with."""

    kind = "relay_error"
    default_status_code = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code or self.default_status_code


class MalformedBody(RelayError):
    kind = "malformed_body"


class SignatureInvalid(RelayError):
    kind = "signature_invalid"


class SubscriptionFailed(RelayError):
    kind = "subscription_failed"


class InvalidMessage(RelayError):
    kind = "invalid_message"


class UnrecognizedType(RelayError):
    kind = "unrecognized_type"


class TenantResolutionFailed(RelayError):
    kind = "tenant_resolution_failed"


class HandlerFailed(RelayError):
    kind = "handler_failed"


class InternalError(RelayError):
    kind = "internal_error"
    default_status_code = 500


def handler_error_status(exc: BaseException) -> int:
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return value
    return HandlerFailed.default_status_code


def relay_error_detail(exc: RelayError) -> dict[str, Any]:
    return {
        "type": exc.kind,
        "status_code": exc.status_code,
        "message": exc.message,
    }
