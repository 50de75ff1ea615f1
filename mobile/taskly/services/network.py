"""HTTP client for the remote task store."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..store.settings_store import SettingsStore
from ..tasks.parser import ParsedTask

LOGGER = logging.getLogger("taskly.network")


class ApiError(Exception):
    pass


class TaskStoreClient:
    def __init__(
        self,
        settings: SettingsStore,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings_store = settings
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict:
        api_key = self.settings_store.get().api_key
        if not api_key:
            raise ApiError("API key missing")
        return {"X-API-Key": api_key}

    def _url(self, path: str) -> str:
        base = self.settings_store.get().server_url.rstrip("/")
        if not base:
            raise ApiError("Server URL missing")
        return f"{base}{path}"

    def test_connection(self) -> bool:
        try:
            resp = self._client.get(self._url("/healthz"), headers=self._headers())
        except httpx.HTTPError as exc:
            raise ApiError(str(exc)) from exc
        return resp.status_code == 200

    def create_task(self, task: ParsedTask) -> Dict[str, Any]:
        try:
            resp = self._client.post(
                self._url("/v1/tasks"),
                headers=self._headers(),
                json=task.to_payload(),
            )
            if resp.status_code == 401:
                raise ApiError("Unauthorized: check API key")
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ApiError(f"Task upload failed: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ApiError(str(exc)) from exc
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as exc:
            raise ApiError(f"Invalid response: {exc}") from exc
        LOGGER.info("Task %r stored", task.title)
        return data if isinstance(data, dict) else {"result": data}

    def close(self) -> None:
        self._client.close()


__all__ = ["ApiError", "TaskStoreClient"]
