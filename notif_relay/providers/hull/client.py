from __future__ import annotations

from typing import Any

import httpx

from notif_relay.config import settings


_API_PREFIX = "/api/v1"


class HullProviderError(Exception):
    """Provider-level exception for tenant API failures."""


def _build_base_url(organization: str) -> str:
    org = organization.strip().rstrip("/")
    if "://" not in org:
        org = f"https://{org}"
    return f"{org}{_API_PREFIX}"


def _build_path(path: str) -> str:
    return "/" + str(path).lstrip("/")


async def _send_request(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    timeout_seconds: float,
    params: dict[str, Any] | None = None,
    json_payload: Any = None,
) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout_seconds) as client:
        return await client.request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json_payload,
        )


class HullClient:
    """Tenant-scoped API client: one organization, one ship id, one secret."""

    def __init__(
        self,
        *,
        organization: str,
        ship_id: str,
        secret: str,
        timeout_seconds: float | None = None,
    ) -> None:
        if not organization or not ship_id or not secret:
            raise HullProviderError("Missing Hull organization, ship id or secret")
        self.organization = organization
        self.ship_id = ship_id
        self.secret = secret
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.tenant_api_timeout_seconds
        )

    @property
    def base_url(self) -> str:
        return _build_base_url(self.organization)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Hull-App-Id": self.ship_id,
            "Hull-Access-Token": self.secret,
        }

    async def _request_json(
        self,
        *,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_payload: Any = None,
    ) -> Any:
        url = f"{self.base_url}{_build_path(path)}"
        try:
            response = await _send_request(
                method=method,
                url=url,
                headers=self._headers(),
                timeout_seconds=self.timeout_seconds,
                params=params,
                json_payload=json_payload,
            )
        except httpx.HTTPError as exc:
            raise HullProviderError(f"Hull connectivity error: {exc}") from exc

        if response.status_code in {401, 403}:
            raise HullProviderError("Invalid Hull credentials")
        if response.status_code == 404:
            raise HullProviderError(f"Hull resource not found: {path}")
        if response.status_code >= 400:
            raise HullProviderError(f"Hull API returned HTTP {response.status_code}: {response.text[:200]}")
        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as exc:
            raise HullProviderError("Unexpected Hull non-JSON response") from exc

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request_json(method="GET", path=path, params=params)

    async def post(self, path: str, payload: Any = None) -> Any:
        return await self._request_json(method="POST", path=path, json_payload=payload)

    async def put(self, path: str, payload: Any = None) -> Any:
        return await self._request_json(method="PUT", path=path, json_payload=payload)

    async def delete(self, path: str) -> Any:
        return await self._request_json(method="DELETE", path=path)

