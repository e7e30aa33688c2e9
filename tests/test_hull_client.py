from __future__ import annotations

import asyncio

import httpx
import pytest

from notif_relay.providers.hull import client as hull_client


class _FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else str(payload)
        self.content = b"" if payload is None and text is None else self.text.encode()

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _client() -> hull_client.HullClient:
    return hull_client.HullClient(organization="org.hullapp.io", ship_id="ship-1", secret="s3cr3t")


def test_get_ship_builds_url_and_auth_headers(monkeypatch):
    calls: list[dict] = []

    async def _fake_send_request(**kwargs):
        calls.append(kwargs)
        return _FakeResponse(200, {"id": "ship-1", "settings": {}})

    monkeypatch.setattr(hull_client, "_send_request", _fake_send_request)

    ship = asyncio.run(_client().get("ship-1"))

    assert ship == {"id": "ship-1", "settings": {}}
    assert calls[0]["method"] == "GET"
    assert calls[0]["url"] == "https://org.hullapp.io/api/v1/ship-1"
    assert calls[0]["headers"]["Hull-App-Id"] == "ship-1"
    assert calls[0]["headers"]["Hull-Access-Token"] == "s3cr3t"


def test_write_methods_send_json_payload(monkeypatch):
    calls: list[tuple[str, str, object]] = []

    async def _fake_send_request(**kwargs):
        calls.append((kwargs["method"], kwargs["url"], kwargs.get("json_payload")))
        return _FakeResponse(200, {"ok": True})

    monkeypatch.setattr(hull_client, "_send_request", _fake_send_request)
    client = hull_client.HullClient(
        organization="http://localhost:8080/",
        ship_id="ship-1",
        secret="s3cr3t",
    )

    async def scenario():
        await client.put("ship-1", {"private_settings": {"a": 1}})
        await client.post("/firehose", {"batch": []})
        await client.delete("users/u-1")

    asyncio.run(scenario())

    assert calls == [
        ("PUT", "http://localhost:8080/api/v1/ship-1", {"private_settings": {"a": 1}}),
        ("POST", "http://localhost:8080/api/v1/firehose", {"batch": []}),
        ("DELETE", "http://localhost:8080/api/v1/users/u-1", None),
    ]


def test_empty_response_returns_none(monkeypatch):
    async def _fake_send_request(**kwargs):
        return _FakeResponse(204)

    monkeypatch.setattr(hull_client, "_send_request", _fake_send_request)

    assert asyncio.run(_client().delete("users/u-1")) is None


@pytest.mark.parametrize(
    ("status_code", "expected_message"),
    [
        (401, "Invalid Hull credentials"),
        (403, "Invalid Hull credentials"),
        (404, "Hull resource not found: ship-1"),
        (503, "Hull API returned HTTP 503: upstream says no"),
    ],
)
def test_http_errors_map_to_provider_errors(monkeypatch, status_code, expected_message):
    async def _fake_send_request(**kwargs):
        return _FakeResponse(status_code, text="upstream says no")

    monkeypatch.setattr(hull_client, "_send_request", _fake_send_request)

    with pytest.raises(hull_client.HullProviderError) as exc_info:
        asyncio.run(_client().get("ship-1"))
    assert str(exc_info.value) == expected_message


def test_connectivity_error_is_wrapped(monkeypatch):
    async def _fake_send_request(**kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(hull_client, "_send_request", _fake_send_request)

    with pytest.raises(hull_client.HullProviderError) as exc_info:
        asyncio.run(_client().get("ship-1"))
    assert str(exc_info.value).startswith("Hull connectivity error:")
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_non_json_response_is_rejected(monkeypatch):
    async def _fake_send_request(**kwargs):
        return _FakeResponse(200, text="<html>oops</html>")

    monkeypatch.setattr(hull_client, "_send_request", _fake_send_request)

    with pytest.raises(hull_client.HullProviderError) as exc_info:
        asyncio.run(_client().get("ship-1"))
    assert str(exc_info.value) == "Unexpected Hull non-JSON response"


def test_missing_credentials_are_rejected():
    with pytest.raises(hull_client.HullProviderError) as exc_info:
        hull_client.HullClient(organization="org.hullapp.io", ship_id="", secret="s3cr3t")
    assert "Missing Hull" in str(exc_info.value)
