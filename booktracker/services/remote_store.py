"""Remote snapshot stores.

A remote store keeps one full library snapshot per user. Writes replace the
whole document; there is no merge, so the last writer wins.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from booktracker.config import settings
from booktracker.errors import RemoteStoreError
from booktracker.services.http_client import OptimizedHTTPClient, get_http_client

logger = logging.getLogger(__name__)


@runtime_checkable
class RemoteStore(Protocol):
    async def exists(self, user_id: str) -> bool: ...

    async def load_all(self, user_id: str) -> Dict[str, Any]: ...

    async def save_all(self, user_id: str, snapshot: Dict[str, Any]) -> None: ...


class HttpRemoteStore:
    """Client for the snapshot server in :mod:`booktracker.api`."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 client: Optional[OptimizedHTTPClient] = None) -> None:
        self.base_url = (base_url or settings.remote_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.api_key
        self._client = client

    async def _http(self) -> OptimizedHTTPClient:
        if self._client is None:
            self._client = await get_http_client()
        return self._client

    def _url(self, user_id: str) -> str:
        return f"{self.base_url}/users/{user_id}/snapshot"

    @property
    def _headers(self) -> Dict[str, str]:
        return {"X-API-Key": self.api_key}

    async def _send(self, method: str, user_id: str, **kwargs) -> httpx.Response:
        client = await self._http()
        try:
            if method == "PUT":
                # Writes are not retried; a failed push is reported and the next change re-pushes.
                return await client.request(method, self._url(user_id), headers=self._headers, **kwargs)
            return await client.request_with_retry(method, self._url(user_id), headers=self._headers, **kwargs)
        except httpx.RequestError as e:
            raise RemoteStoreError(f"{method} snapshot for {user_id} failed: {e}") from e

    async def exists(self, user_id: str) -> bool:
        response = await self._send("HEAD", user_id)
        if response.status_code == 404:
            return False
        if response.status_code != 200:
            raise RemoteStoreError(f"Unexpected status checking snapshot for {user_id}",
                                   status_code=response.status_code)
        return True

    async def load_all(self, user_id: str) -> Dict[str, Any]:
        response = await self._send("GET", user_id)
        if response.status_code != 200:
            raise RemoteStoreError(f"Could not load snapshot for {user_id}",
                                   status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteStoreError(f"Snapshot for {user_id} is not valid JSON") from e
        return body.get("data") or {}

    async def save_all(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        response = await self._send("PUT", user_id, json={"data": snapshot})
        if response.status_code not in (200, 201):
            raise RemoteStoreError(f"Could not save snapshot for {user_id}",
                                   status_code=response.status_code)
        logger.debug(f"Saved snapshot for {user_id}")


class InMemoryRemoteStore:
    """Dict-backed store for tests and offline use. Snapshots are deep-copied both ways."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.documents: Dict[str, Dict[str, Any]] = {
            user_id: copy.deepcopy(doc) for user_id, doc in (documents or {}).items()
        }
        self.save_count = 0

    async def exists(self, user_id: str) -> bool:
        return user_id in self.documents

    async def load_all(self, user_id: str) -> Dict[str, Any]:
        if user_id not in self.documents:
            raise RemoteStoreError(f"No snapshot for {user_id}", status_code=404)
        return copy.deepcopy(self.documents[user_id])

    async def save_all(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        self.documents[user_id] = copy.deepcopy(snapshot)
        self.save_count += 1
