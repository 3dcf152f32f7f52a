from __future__ import annotations

import pytest

from app.core.auth import Actor
from app.core.authorization import Role
from app.services.blobs import InMemoryBlobStore
from app.services.store import InMemoryDataStore

CATALOG_SEED = {
    "positions": [
        {"id": 1, "code": "M01", "name": "Médico General"},
        {"id": 2, "code": "E01", "name": "Enfermera General"},
    ],
    "facilities": [
        {"id": 1, "facility_code": "DFSSA000001", "name": "Centro de Salud Centro"},
        {"id": 2, "facility_code": "DFSSA000002", "name": "Hospital General Norte"},
        {"id": 3, "facility_code": "MCSSA000003", "name": "Centro de Salud Rural"},
    ],
    "validator_units": [
        {"id": 1, "name": "Unidad de Validación Médica"},
        {"id": 2, "name": "Unidad de Validación Administrativa"},
    ],
}

PLANNER = Actor(id="planner-1", roles=frozenset({Role.PLANNING}))
HEALTH_REVIEWER = Actor(id="health-1", roles=frozenset({Role.HEALTH_REVIEW}))
HR_OFFICER = Actor(id="hr-1", roles=frozenset({Role.HR}))
COORDINATOR = Actor(id="coord-1", roles=frozenset({Role.STATE_COORDINATION}))
OTHER_COORDINATOR = Actor(id="coord-2", roles=frozenset({Role.STATE_COORDINATION}))
VALIDATOR = Actor(id="validator-1", roles=frozenset({Role.VALIDATOR}))
SECOND_VALIDATOR = Actor(id="validator-2", roles=frozenset({Role.VALIDATOR}))
EXECUTIVE = Actor(id="dg-1", roles=frozenset({Role.EXECUTIVE}))


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore(seed=CATALOG_SEED)


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()
