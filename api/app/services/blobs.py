from __future__ import annotations

from typing import Protocol
from urllib.parse import quote

import httpx


class BlobStoreError(Exception):
    """Raised when the object storage call fails."""


class BlobStore(Protocol):
    async def upload(self, bucket: str, key: str, data: bytes, *, content_type: str) -> str: ...

    async def signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str: ...

    async def remove(self, bucket: str, path: str) -> None: ...


class SupabaseBlobStore:
    def __init__(self, base_url: str | None, service_key: str | None, timeout_seconds: float = 30.0) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.service_key = service_key
        self.timeout_seconds = timeout_seconds

    async def upload(self, bucket: str, key: str, data: bytes, *, content_type: str) -> str:
        url = f"{self._storage_url()}/object/{quote(bucket)}/{quote(key)}"
        response = await self._request("POST", url, content=data, headers={"Content-Type": content_type})
        payload = response.json()
        stored_key = payload.get("Key") if isinstance(payload, dict) else None
        prefix = f"{bucket}/"
        if isinstance(stored_key, str) and stored_key.startswith(prefix):
            return stored_key[len(prefix) :]
        return key

    async def signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        url = f"{self._storage_url()}/object/sign/{quote(bucket)}/{quote(path)}"
        response = await self._request("POST", url, json={"expiresIn": ttl_seconds})
        payload = response.json()
        signed = payload.get("signedURL") if isinstance(payload, dict) else None
        if not isinstance(signed, str) or not signed:
            raise BlobStoreError("storage did not return a signed url")
        return f"{self._storage_url()}{signed}" if signed.startswith("/") else signed

    async def remove(self, bucket: str, path: str) -> None:
        url = f"{self._storage_url()}/object/{quote(bucket)}"
        await self._request("DELETE", url, json={"prefixes": [path]})

    def _storage_url(self) -> str:
        if not self.base_url or not self.service_key:
            raise BlobStoreError("Supabase storage is not configured")
        return f"{self.base_url}/storage/v1"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key or "",
            **kwargs.pop("headers", {}),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            raise BlobStoreError("storage unavailable") from exc
        if response.status_code >= 400:
            raise BlobStoreError(f"storage request failed status={response.status_code}")
        return response


class InMemoryBlobStore:
    def __init__(self, base_url: str = "memory://blobs") -> None:
        self.base_url = base_url
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}

    async def upload(self, bucket: str, key: str, data: bytes, *, content_type: str) -> str:
        if (bucket, key) in self.objects:
            raise BlobStoreError(f"object already exists: {bucket}/{key}")
        self.objects[(bucket, key)] = (data, content_type)
        return key

    async def signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        if (bucket, path) not in self.objects:
            raise BlobStoreError(f"object not found: {bucket}/{path}")
        return f"{self.base_url}/{bucket}/{path}?expires_in={ttl_seconds}"

    async def remove(self, bucket: str, path: str) -> None:
        self.objects.pop((bucket, path), None)
