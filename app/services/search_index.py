# app/services/search_index.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class SearchIndexError(RuntimeError):
    """
    Raised when a call to the search index REST API fails.
    """


class SearchIndexClient:
    """
    Minimal REST client for the search index that mirrors meeting documents.

    Responsibilities
    ----------------
    - Save (create or replace) a search hit under its `objectID`.
    - Delete a search hit by id.
    - Keep HTTP client details out of the plan executor.

    Notes
    -----
    - The API is Algolia-compatible: objects live under
      `/1/indexes/{index}/{objectID}` and requests authenticate with the
      `X-Algolia-Application-Id` / `X-Algolia-API-Key` headers.
    - A fresh `httpx.AsyncClient` is opened per call; callers that need to
      inject a transport (tests) pass `transport=`.
    """

    def __init__(
        self,
        app_id: str,
        api_key: str,
        index: str,
        base_url: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not app_id or not api_key or not index:
            raise ValueError("app_id, api_key and index are required")

        self._app_id = app_id
        self._api_key = api_key
        self._index = index
        self._base_url = (base_url or f"https://{app_id}.algolia.net").rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def index(self) -> str:
        return self._index

    def object_url(self, object_id: str) -> str:
        return f"{self._base_url}/1/indexes/{quote(self._index)}/{quote(object_id, safe='')}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
    ) -> httpx.Response:
        headers = {
            "X-Algolia-Application-Id": self._app_id,
            "X-Algolia-API-Key": self._api_key,
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.request(
                    method=method.upper(),
                    url=url,
                    headers=headers,
                    json=json,
                )
        except httpx.HTTPError as exc:
            raise SearchIndexError(f"Search index {method.upper()} failed: {exc}") from exc

        return resp

    async def save_object(self, hit: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or replace `hit` under its `objectID`.

        Raises SearchIndexError on non-2xx responses.
        """
        object_id = hit.get("objectID")
        if not object_id:
            raise SearchIndexError("Search hit is missing its objectID.")

        resp = await self._request("PUT", self.object_url(object_id), json=hit)
        if resp.status_code // 100 != 2:
            raise SearchIndexError(
                f"Search index save failed (status={resp.status_code}): {resp.text}"
            )
        logger.debug("Saved %s to search index %s", object_id, self._index)
        return resp.json()

    async def delete_object(self, object_id: str) -> None:
        """
        Remove the hit with `object_id`. Deleting an absent hit is not an error.

        Raises SearchIndexError on other non-2xx responses.
        """
        resp = await self._request("DELETE", self.object_url(object_id))
        if resp.status_code == 404:
            return
        if resp.status_code // 100 != 2:
            raise SearchIndexError(
                f"Search index delete failed (status={resp.status_code}): {resp.text}"
            )
        logger.debug("Deleted %s from search index %s", object_id, self._index)


_search_index_instance: Optional[SearchIndexClient] = None


def get_search_index() -> Optional[SearchIndexClient]:
    """
    Lazily construct the shared SearchIndexClient from application settings.

    Returns None when the search index is not configured, in which case
    resync hooks are skipped.
    """
    global _search_index_instance
    if _search_index_instance is None:
        settings = get_settings()
        if not settings.SEARCH_APP_ID or not settings.SEARCH_API_KEY:
            return None
        _search_index_instance = SearchIndexClient(
            app_id=settings.SEARCH_APP_ID,
            api_key=settings.SEARCH_API_KEY,
            index=settings.SEARCH_INDEX,
            base_url=str(settings.SEARCH_BASE_URL) if settings.SEARCH_BASE_URL else None,
        )
    return _search_index_instance
