"""
Async client for the Prism backend API (the system of record for deals).

Responses come wrapped in ``{"success": bool, "data": ...}``; callers get the
``data`` part. Non-2xx responses raise ``httpx.HTTPStatusError``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from prism.config import settings

logger = logging.getLogger("prism.backend_client")


class PrismBackendClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        root = (base_url or settings.prism_api_url).rstrip("/")
        self.base_url = f"{root}/api"
        self.timeout = timeout if timeout is not None else settings.prism_api_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "PrismBackendClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, payload: Dict[str, Any]) -> Any:
        if self._client is None:
            raise RuntimeError("PrismBackendClient must be used as an async context manager")

        response = await self._client.request(method, path, json=payload)
        if response.status_code >= 400:
            logger.warning(
                "prism_backend_error",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
        response.raise_for_status()

        if not response.content:
            return None
        body = response.json()
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def create_deal(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", "/deals", payload)
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError("Deal create response is missing the deal id")
        return data

    async def upload_attachment(self, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", "/attachments", payload)

    async def save_schedule_splits(self, schedule_id: str, splits: List[Dict[str, Any]]) -> Any:
        return await self._request("PUT", f"/schedules/{schedule_id}/splits/batch", {"splits": splits})
