from typing import Any

from fastapi import APIRouter, Depends

from app.api.errors import http_errors
from app.core.auth import Actor
from app.core.security import get_current_actor
from app.services.catalogs import list_catalog
from app.services.providers import get_data_store

router = APIRouter()


@router.get("/{catalog}")
async def read_catalog(
    catalog: str,
    actor: Actor = Depends(get_current_actor),
    store=Depends(get_data_store),
) -> list[dict[str, Any]]:
    with http_errors():
        return await list_catalog(store, actor=actor, catalog=catalog)
