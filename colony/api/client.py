"""Colony client — talks to a running `colony serve` over HTTP.

Follows the same httpx-based async pattern as the rest of the package's
network code: one short-lived AsyncClient per call.

Usage:
    client = ColonyClient("http://127.0.0.1:8420")
    result = await client.run_cycle([{"kind": "goal", "content": "speed up search"}])
    print(result["mode"], result["summary"])
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

_logger = logging.getLogger(__name__)


class ColonyAPIError(RuntimeError):
    """A colony server answered with an error status."""

    def __init__(self, status_code: int, message: str, error_type: str = "") -> None:
        self.status_code = status_code
        self.error_type = error_type
        super().__init__(f"{status_code} {error_type}: {message}" if error_type else f"{status_code}: {message}")


class ColonyClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def run_cycle(
        self, thoughts: list[dict[str, Any]], features: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"thoughts": thoughts}
        if features is not None:
            body["features"] = features
        return await self._request("POST", "/hybrid-evolution", json=body)

    async def process(self, thoughts: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._request("POST", "/sequential-thoughts", json={"thoughts": thoughts})

    async def dispatch(
        self, mode: str, script_path: str, params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self._request("POST", "/dispatch", json={
            "mode": mode, "scriptPath": script_path, "params": params or {},
        })

    async def sense(self, kind: str, limit: int = 20) -> list[dict[str, Any]]:
        return await self._request("GET", f"/api/signals/{kind}", params={"limit": limit})

    async def emit(self, kind: str, content: str, strength: float = 1.0) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/signals/{kind}", json={"content": content, "strength": strength},
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport,
        ) as client:
            resp = await client.request(method, path, **kwargs)
            if resp.is_error:
                raise self._error_from(resp)
            return resp.json()

    @staticmethod
    def _error_from(resp: httpx.Response) -> ColonyAPIError:
        try:
            data = resp.json()
        except ValueError:
            return ColonyAPIError(resp.status_code, resp.text[:300])
        if isinstance(data, dict):
            message = data.get("error") or data.get("detail") or str(data)
            return ColonyAPIError(resp.status_code, str(message), data.get("type", ""))
        return ColonyAPIError(resp.status_code, str(data))
