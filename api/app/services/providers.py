from functools import lru_cache

from app.core.config import get_settings
from app.services.blobs import BlobStore, InMemoryBlobStore, SupabaseBlobStore
from app.services.catalogs import LOCAL_CATALOG_SEED
from app.services.postgres_store import PostgresDataStore
from app.services.store import DataStore, InMemoryDataStore


@lru_cache
def get_data_store() -> DataStore:
    settings = get_settings()
    if settings.data_store_backend == "memory":
        return InMemoryDataStore(seed=LOCAL_CATALOG_SEED)
    return PostgresDataStore(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )


@lru_cache
def get_blob_store() -> BlobStore:
    settings = get_settings()
    if settings.data_store_backend == "memory":
        return InMemoryBlobStore()
    return SupabaseBlobStore(
        base_url=settings.supabase_url,
        service_key=settings.supabase_service_role_key,
        timeout_seconds=settings.storage_timeout_seconds,
    )
