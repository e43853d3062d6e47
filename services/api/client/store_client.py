# services/api/client/store_client.py
"""
Store client used by the sync coordinator.

All calls are async round-trips. Transport errors, timeouts and 5xx
answers become StoreUnavailable; 404 becomes NotFound.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from core.errors import NotFound, StoreUnavailable

logger = logging.getLogger(__name__)


class StoreClient(Protocol):
    async def list_versions(self, file_id: int) -> List[Dict[str, Any]]: ...

    async def create_version(
        self,
        file_id: int,
        content: bytes,
        filename: str,
        description: Optional[str],
        uploaded_by_id: int,
    ) -> Dict[str, Any]: ...

    async def list_annotations(self, version_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]: ...

    async def create_annotation(self, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update_annotation(self, annotation_id: int, partial: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete_annotation(self, annotation_id: int) -> Dict[str, Any]: ...

    async def promote_to_task(self, annotation_id: int) -> Dict[str, Any]: ...


class HttpStoreClient:
    """StoreClient over the vault's HTTP API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings) -> "HttpStoreClient":
        return cls(settings.store_base_url, timeout=settings.store_timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpStoreClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Store timeout: {method} {path}")
            raise StoreUnavailable(f"{method} {path} timed out") from e
        except httpx.RequestError as e:
            logger.warning(f"Store unreachable: {method} {path}: {e}")
            raise StoreUnavailable(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFound("resource", path)
        if response.status_code >= 500:
            raise StoreUnavailable(f"{method} {path} -> {response.status_code}")
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise ValueError(f"{method} {path} rejected ({response.status_code}): {detail}")
        return response.json()

    async def list_versions(self, file_id: int) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/pdf/files/{file_id}/versions")

    async def create_version(
        self,
        file_id: int,
        content: bytes,
        filename: str,
        description: Optional[str],
        uploaded_by_id: int,
    ) -> Dict[str, Any]:
        data = {"uploadedById": str(uploaded_by_id)}
        if description is not None:
            data["description"] = description
        return await self._request(
            "POST",
            f"/pdf/files/{file_id}/versions",
            files={"file": (filename or "document.pdf", content, "application/pdf")},
            data=data,
        )

    async def list_annotations(self, version_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"projectId": project_id} if project_id is not None else None
        return await self._request("GET", f"/pdf/versions/{version_id}/annotations", params=params)

    async def create_annotation(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/pdf/annotations", json=data)

    async def update_annotation(self, annotation_id: int, partial: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/pdf/annotations/{annotation_id}", json=partial)

    async def delete_annotation(self, annotation_id: int) -> Dict[str, Any]:
        return await self._request("DELETE", f"/pdf/annotations/{annotation_id}")

    async def promote_to_task(self, annotation_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"/pdf/annotations/{annotation_id}/promote")
