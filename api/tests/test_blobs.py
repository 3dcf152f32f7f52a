from __future__ import annotations

import asyncio

import pytest

from app.services.blobs import BlobStoreError, InMemoryBlobStore, SupabaseBlobStore


def test_memory_blob_store_upload_sign_and_remove() -> None:
    blobs = InMemoryBlobStore()

    path = asyncio.run(blobs.upload("cvs", "GODE561231HDFRRL09_1.pdf", b"%PDF", content_type="application/pdf"))
    url = asyncio.run(blobs.signed_url("cvs", path, 300))
    asyncio.run(blobs.remove("cvs", path))

    assert url == "memory://blobs/cvs/GODE561231HDFRRL09_1.pdf?expires_in=300"
    assert blobs.objects == {}
    with pytest.raises(BlobStoreError):
        asyncio.run(blobs.signed_url("cvs", path, 300))


def test_memory_blob_store_rejects_overwrite() -> None:
    blobs = InMemoryBlobStore()
    asyncio.run(blobs.upload("cvs", "a.pdf", b"1", content_type="application/pdf"))

    with pytest.raises(BlobStoreError):
        asyncio.run(blobs.upload("cvs", "a.pdf", b"2", content_type="application/pdf"))


def test_supabase_blob_store_requires_configuration() -> None:
    blobs = SupabaseBlobStore(base_url=None, service_key=None)

    with pytest.raises(BlobStoreError, match="not configured"):
        asyncio.run(blobs.upload("cvs", "a.pdf", b"1", content_type="application/pdf"))
