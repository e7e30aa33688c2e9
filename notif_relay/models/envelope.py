from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EnvelopeKind(str, Enum):
    SUBSCRIPTION_CONFIRMATION = "SubscriptionConfirmation"
    NOTIFICATION = "Notification"
    UNRECOGNIZED = "Unrecognized"


class Envelope(BaseModel):
    """Raw SNS delivery as decoded from the request body."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str | None = Field(default=None, alias="Type")
    message_id: str | None = Field(default=None, alias="MessageId")
    topic_arn: str | None = Field(default=None, alias="TopicArn")
    subject: str | None = Field(default=None, alias="Subject")
    message: str | None = Field(default=None, alias="Message")
    timestamp: str | None = Field(default=None, alias="Timestamp")
    signature_version: str | None = Field(default=None, alias="SignatureVersion")
    signature: str | None = Field(default=None, alias="Signature")
    signing_cert_url: str | None = Field(default=None, alias="SigningCertURL")
    subscribe_url: str | None = Field(default=None, alias="SubscribeURL")
    unsubscribe_url: str | None = Field(default=None, alias="UnsubscribeURL")
    token: str | None = Field(default=None, alias="Token")

    @property
    def kind(self) -> EnvelopeKind:
        if self.type == EnvelopeKind.SUBSCRIPTION_CONFIRMATION.value:
            return EnvelopeKind.SUBSCRIPTION_CONFIRMATION
        if self.type == EnvelopeKind.NOTIFICATION.value:
            return EnvelopeKind.NOTIFICATION
        return EnvelopeKind.UNRECOGNIZED


@dataclass(frozen=True)
class Notification:
    """Normalized unit handed to handlers."""
    subject: str
    message: Any
    timestamp: datetime | None = None


@dataclass(frozen=True)
class TenantConfig:
    organization: str | None = None
    ship: str | None = None
    secret: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.organization and self.ship and self.secret)


@dataclass(frozen=True)
class DispatchContext:
    """Per-invocation bundle passed to every handler."""
    request: Any
    ship: dict[str, Any] | None = None
    client: Any = None
