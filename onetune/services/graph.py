"""Async client for the Microsoft Graph drive endpoints used by the player."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..config import AppConfig
from .auth import AuthenticationRequiredError
from .drive_paths import PathResolutionError, item_endpoint_for_path
from .events import emit_graph_event
from .models import DriveItem

LOGGER = logging.getLogger(__name__)

ITEM_FIELDS = "id,name,folder,file,size,parentReference"
DOWNLOAD_URL_FIELD = "@microsoft.graph.downloadUrl"
NEXT_LINK_FIELD = "@odata.nextLink"

TokenProvider = Callable[[], str]


class GraphAPIError(RuntimeError):
    """Raised when a Graph request fails or returns an unusable payload."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    text = response.text.strip()
    return text or response.reason_phrase or f"HTTP {response.status_code}"


class GraphClient:
    """Bearer-token authenticated access to the signed-in user's drive."""

    def __init__(
        self,
        config: AppConfig,
        token_provider: TokenProvider,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = config.graph_base_url.rstrip("/")
        self._timeout = httpx.Timeout(config.request_timeout)
        self._token_provider = token_provider
        self._transport = transport

    async def _token(self) -> str:
        # MSAL blocks on network and file I/O.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._token_provider)

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("https://") or endpoint.startswith("http://"):
            return endpoint
        return f"{self._base_url}{endpoint}"

    async def _request(
        self,
        endpoint: str,
        *,
        params: Optional[Dict[str, str]] = None,
        operation: str,
    ) -> httpx.Response:
        token = await self._token()
        url = self._url(endpoint)
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as error:
            emit_graph_event(
                operation,
                context={"endpoint": endpoint, "error": str(error)},
                duration_ms=(time.perf_counter() - started) * 1000.0,
                level=logging.ERROR,
            )
            raise GraphAPIError(f"Could not reach Microsoft Graph: {error}") from error

        duration_ms = (time.perf_counter() - started) * 1000.0
        emit_graph_event(
            operation,
            context={"endpoint": endpoint, "status": response.status_code},
            duration_ms=duration_ms,
            level=logging.INFO if response.is_success else logging.WARNING,
        )

        if response.status_code == 401:
            raise AuthenticationRequiredError(_error_message(response))
        if not response.is_success:
            raise GraphAPIError(_error_message(response), status_code=response.status_code)
        return response

    async def _json(self, endpoint: str, *, params: Optional[Dict[str, str]] = None, operation: str) -> Dict[str, Any]:
        response = await self._request(endpoint, params=params, operation=operation)
        try:
            payload = response.json()
        except ValueError as error:
            raise GraphAPIError(
                "Microsoft Graph returned a malformed response", status_code=response.status_code
            ) from error
        if not isinstance(payload, dict):
            raise GraphAPIError(
                "Microsoft Graph returned an unexpected payload", status_code=response.status_code
            )
        return payload

    async def list_children(self, item_id: Optional[str] = None) -> List[DriveItem]:
        """Return the children of the drive root or of the folder *item_id*."""

        if item_id:
            endpoint = f"/me/drive/items/{item_id}/children"
        else:
            endpoint = "/me/drive/root/children"

        items: List[DriveItem] = []
        next_endpoint: Optional[str] = endpoint
        params: Optional[Dict[str, str]] = {"$select": ITEM_FIELDS}
        while next_endpoint:
            payload = await self._json(next_endpoint, params=params, operation="list children")
            for raw in payload.get("value") or []:
                if isinstance(raw, dict) and raw.get("id"):
                    items.append(DriveItem.from_graph(raw))
            next_endpoint = payload.get(NEXT_LINK_FIELD)
            # The next link already carries the query string.
            params = None
        return items

    async def get_item(self, item_id: str) -> DriveItem:
        """Return metadata for *item_id*, including its parent reference."""

        payload = await self._json(
            f"/me/drive/items/{item_id}",
            params={"$select": ITEM_FIELDS},
            operation="get item",
        )
        return DriveItem.from_graph(payload)

    async def get_content(self, item_id: str) -> bytes:
        """Return the raw bytes stored in *item_id*."""

        response = await self._request(
            f"/me/drive/items/{item_id}/content", operation="get content"
        )
        return response.content

    async def get_download_url(self, path: str) -> str:
        """Resolve the absolute drive *path* and return its short-lived download URL."""

        try:
            endpoint = item_endpoint_for_path(path)
        except PathResolutionError as error:
            raise GraphAPIError(str(error)) from error
        payload = await self._json(endpoint, operation="get download url")
        download_url = payload.get(DOWNLOAD_URL_FIELD)
        if not download_url:
            LOGGER.error(
                "Download URL missing for %s; available keys: %s", path, ", ".join(sorted(payload))
            )
            raise GraphAPIError(f"No download URL available for {path}")
        return str(download_url)


__all__ = ["GraphAPIError", "GraphClient", "TokenProvider"]
