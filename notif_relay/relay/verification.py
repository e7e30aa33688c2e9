"""SNS delivery authentication and envelope interpretation.

Signature checks follow the SNS message-signing scheme: the signing
certificate must be served over https from the configured signing host, and
the ``Signature`` is an RSA PKCS#1 v1.5 signature over a canonical
``key\\nvalue\\n`` string built from a fixed, type-dependent key list.

``permissive_audit`` (the default) logs a failed check and keeps processing
the delivery; ``enforce`` rejects it.
"""

from __future__ import annotations

import base64
import inspect
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable
from urllib.parse import urlparse

import httpx
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from fastapi import Request

from notif_relay.config import Settings, settings
from notif_relay.domain import normalization
from notif_relay.domain.errors import InvalidMessage, SignatureInvalid, SubscriptionFailed, UnrecognizedType
from notif_relay.models.envelope import Envelope, EnvelopeKind, Notification
from notif_relay.observability import incr_metric, log_event, request_id_for


_SIGNATURE_MODES = {"permissive_audit", "enforce"}
_HASH_BY_SIGNATURE_VERSION = {"1": hashes.SHA1, "2": hashes.SHA256}
_REQUIRED_KEYS = ("Message", "MessageId", "Timestamp", "TopicArn", "Type", "Signature", "SigningCertURL", "SignatureVersion")
_SUBSCRIPTION_REQUIRED_KEYS = ("SubscribeURL", "Token")
_NOTIFICATION_SIGNABLE_KEYS = ("Message", "MessageId", "Subject", "Timestamp", "TopicArn", "Type")
_SUBSCRIPTION_SIGNABLE_KEYS = ("Message", "MessageId", "SubscribeURL", "Timestamp", "Token", "TopicArn", "Type")


def build_signing_string(envelope: Envelope) -> str:
    data = envelope.model_dump(by_alias=True)
    keys = _NOTIFICATION_SIGNABLE_KEYS if envelope.kind == EnvelopeKind.NOTIFICATION else _SUBSCRIPTION_SIGNABLE_KEYS
    return "".join(f"{key}\n{data[key]}\n" for key in keys if data.get(key) is not None)


def _missing_keys(envelope: Envelope) -> list[str]:
    data = envelope.model_dump(by_alias=True)
    required = list(_REQUIRED_KEYS)
    if envelope.kind != EnvelopeKind.NOTIFICATION:
        required.extend(_SUBSCRIPTION_REQUIRED_KEYS)
    return [key for key in required if not data.get(key)]


def _parse_timestamp(raw: str | None) -> datetime | None:
    """ISO-8601 timestamp, or None when absent or unparseable."""
    if raw is None:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw).strip().replace("Z", "+00:00"))
    except ValueError:
        log_event("sns_timestamp_unparseable", level=logging.WARNING, timestamp=raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def _fetch_certificate_pem(url: str, *, timeout_seconds: float) -> bytes:
    async with httpx.AsyncClient(timeout=timeout_seconds) as client:
        response = await client.get(url)
    response.raise_for_status()
    return response.content


async def _confirm_subscription(url: str, *, timeout_seconds: float) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True) as client:
        return await client.get(url)


class SignatureVerifier:
    def __init__(
        self,
        *,
        mode: str | None = None,
        host_pattern: str | None = None,
        group_traits: bool | None = None,
        on_subscribe: Callable[[Request], Any] | None = None,
        config: Settings = settings,
    ) -> None:
        raw_mode = str(mode or config.sns_signature_mode or "permissive_audit").strip().lower()
        self.mode = raw_mode if raw_mode in _SIGNATURE_MODES else "permissive_audit"
        self.host_pattern = re.compile(host_pattern or config.sns_signing_host_pattern)
        self.group_traits = config.group_traits if group_traits is None else group_traits
        self.on_subscribe = on_subscribe
        self.certificate_timeout_seconds = config.sns_certificate_timeout_seconds
        self.subscribe_timeout_seconds = config.sns_subscribe_timeout_seconds
        self._public_keys: dict[str, rsa.RSAPublicKey] = {}

    async def _public_key(self, cert_url: str) -> rsa.RSAPublicKey:
        cached = self._public_keys.get(cert_url)
        if cached is not None:
            return cached
        pem = await _fetch_certificate_pem(cert_url, timeout_seconds=self.certificate_timeout_seconds)
        public_key = x509.load_pem_x509_certificate(pem).public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise ValueError("signing certificate does not carry an RSA key")
        self._public_keys[cert_url] = public_key
        return public_key

    async def check_signature(self, envelope: Envelope) -> str | None:
        """Return None when the envelope is authentic, otherwise the failure reason."""
        missing = _missing_keys(envelope)
        if missing:
            return f"missing_keys:{','.join(missing)}"

        hash_cls = _HASH_BY_SIGNATURE_VERSION.get(str(envelope.signature_version))
        if hash_cls is None:
            return f"unsupported_signature_version:{envelope.signature_version}"

        try:
            parsed = urlparse(envelope.signing_cert_url or "")
            hostname = parsed.hostname or ""
        except ValueError:
            return "invalid_certificate_url"
        if parsed.scheme != "https" or not self.host_pattern.fullmatch(hostname):
            return "invalid_certificate_url"

        try:
            public_key = await self._public_key(envelope.signing_cert_url)
        except (httpx.HTTPError, ValueError) as exc:
            log_event("sns_certificate_fetch_failed", level=logging.WARNING, cert_url=envelope.signing_cert_url, error=str(exc))
            return "certificate_unavailable"

        try:
            signature = base64.b64decode(envelope.signature or "", validate=True)
            public_key.verify(signature, build_signing_string(envelope).encode("utf-8"), padding.PKCS1v15(), hash_cls())
        except (InvalidSignature, ValueError):
            return "signature_mismatch"
        return None

    async def verify(self, envelope: Envelope, request: Request) -> Notification | None:
        """Authenticate and interpret an envelope.

        Returns the Notification to dispatch, or None once a subscription
        handshake has completed and the delivery needs no further processing.
        """
        req_id = request_id_for(request)
        reason = await self.check_signature(envelope)
        if reason:
            if self.mode == "enforce":
                incr_metric("sns.signature.rejected", reason=reason.split(":")[0])
                raise SignatureInvalid(f"Invalid signature: {reason}")
            incr_metric("sns.signature.audit_failed", reason=reason.split(":")[0], mode=self.mode)
            log_event(
                "sns_signature_audit_failed",
                level=logging.WARNING,
                request_id=req_id,
                reason=reason,
                mode=self.mode,
                message_id=envelope.message_id,
                topic_arn=envelope.topic_arn,
            )

        kind = envelope.kind
        if kind == EnvelopeKind.SUBSCRIPTION_CONFIRMATION:
            await self._confirm(envelope, request)
            return None
        if kind == EnvelopeKind.NOTIFICATION:
            return self._build_notification(envelope)
        raise UnrecognizedType(f"Unrecognized message type: {envelope.type}")

    async def _confirm(self, envelope: Envelope, request: Request) -> None:
        req_id = request_id_for(request)
        if not envelope.subscribe_url:
            raise SubscriptionFailed("Failed to subscribe")
        try:
            response = await _confirm_subscription(envelope.subscribe_url, timeout_seconds=self.subscribe_timeout_seconds)
        except httpx.HTTPError as exc:
            log_event("sns_subscription_failed", level=logging.WARNING, request_id=req_id, topic_arn=envelope.topic_arn, error=str(exc))
            raise SubscriptionFailed("Failed to subscribe") from exc
        if response.status_code >= 400:
            log_event(
                "sns_subscription_failed",
                level=logging.WARNING,
                request_id=req_id,
                topic_arn=envelope.topic_arn,
                status_code=response.status_code,
            )
            raise SubscriptionFailed("Failed to subscribe")

        incr_metric("sns.subscriptions.confirmed")
        log_event("sns_subscription_confirmed", request_id=req_id, topic_arn=envelope.topic_arn)
        if self.on_subscribe is not None:
            result = self.on_subscribe(request)
            if inspect.isawaitable(result):
                await result

    def _build_notification(self, envelope: Envelope) -> Notification:
        try:
            if envelope.message is None:
                raise ValueError("notification has no message")
            payload = json.loads(envelope.message)
            if isinstance(payload, dict) and isinstance(payload.get("user"), dict) and self.group_traits:
                payload["user"] = normalization.group_traits(payload["user"])
        except (TypeError, ValueError) as exc:
            raise InvalidMessage("Invalid message") from exc
        return Notification(
            subject=envelope.subject or "",
            message=payload,
            timestamp=_parse_timestamp(envelope.timestamp),
        )
