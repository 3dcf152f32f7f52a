from typing import Any

from app.core.auth import Actor
from app.services.errors import WorkflowNotFoundError
from app.services.guards import require_action, translate_store_errors
from app.services.store import DataStore

# public catalog name -> (collection, sort column)
CATALOGS: dict[str, tuple[str, str]] = {
    "positions": ("positions", "name"),
    "facilities": ("facilities", "facility_code"),
    "validator-units": ("validator_units", "name"),
}

# Loaded by the in-memory backend, which has no migration to seed catalogs.
LOCAL_CATALOG_SEED: dict[str, list[dict[str, Any]]] = {
    "positions": [
        {"id": 1, "code": "M01", "name": "Médico General"},
        {"id": 2, "code": "M02", "name": "Médico Especialista"},
        {"id": 3, "code": "E01", "name": "Enfermera General"},
    ],
    "facilities": [
        {"id": 1, "facility_code": "DFSSA000001", "name": "Centro de Salud Urbano"},
        {"id": 2, "facility_code": "DFSSA000002", "name": "Hospital General"},
        {"id": 3, "facility_code": "MCSSA000003", "name": "Centro de Salud Rural"},
    ],
    "validator_units": [
        {"id": 1, "name": "Unidad de Validación Médica"},
        {"id": 2, "name": "Unidad de Validación Administrativa"},
    ],
}


async def list_catalog(store: DataStore, *, actor: Actor, catalog: str) -> list[dict[str, Any]]:
    require_action(actor, "catalog.read")
    entry = CATALOGS.get(catalog)
    if entry is None:
        raise WorkflowNotFoundError(f"unknown catalog: {catalog}")
    collection, order_by = entry
    with translate_store_errors():
        return await store.find(collection, order_by=order_by)
