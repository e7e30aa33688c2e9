from __future__ import annotations

import json

from fastapi import Request
from pydantic import ValidationError
from starlette.requests import ClientDisconnect

from notif_relay.domain.errors import MalformedBody
from notif_relay.models.envelope import Envelope


async def read_envelope(request: Request) -> Envelope:
    try:
        raw_body = await request.body()
        payload = json.loads(raw_body.decode("utf-8"))
    except (ClientDisconnect, UnicodeDecodeError, ValueError) as exc:
        raise MalformedBody("Invalid body") from exc

    if not isinstance(payload, dict):
        raise MalformedBody("Invalid body" if payload else "Empty Message")
    try:
        return Envelope.model_validate(payload)
    except ValidationError as exc:
        raise MalformedBody("Invalid body") from exc
