from __future__ import annotations

import os
from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import app.core.security as security
from app.core.config import get_settings
from app.main import app
from app.services.blobs import InMemoryBlobStore
from app.services.postgres_store import PostgresDataStore
from app.services.providers import get_blob_store, get_data_store
from app.services.store import InMemoryDataStore
from conftest import CATALOG_SEED

# bearer token -> (user id, role labels)
TOKENS: dict[str, tuple[str, list[str]]] = {
    "planeacion": ("planner-1", ["PLANEACION"]),
    "salud": ("health-1", ["ATENCION_SALUD"]),
    "rh": ("hr-1", ["RH"]),
    "coordinacion": ("coord-1", ["COORD_ESTATAL"]),
    "validador": ("validator-1", ["VALIDADOR"]),
    "dg": ("dg-1", ["DG"]),
}
PDF_FILE = ("cv.pdf", b"%PDF-1.4 candidate", "application/pdf")


@pytest.fixture
def stores() -> tuple[InMemoryDataStore, InMemoryBlobStore]:
    return InMemoryDataStore(seed=CATALOG_SEED), InMemoryBlobStore()


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch, stores: tuple[InMemoryDataStore, InMemoryBlobStore]) -> TestClient:
    os.environ["RC_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["RC_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    store, blobs = stores
    app.dependency_overrides[get_data_store] = lambda: store
    app.dependency_overrides[get_blob_store] = lambda: blobs

    async def _fake_user(*, token: str, **_: Any) -> dict[str, Any]:
        if token not in TOKENS:
            raise HTTPException(status_code=401, detail="invalid bearer token")
        return {"id": TOKENS[token][0]}

    async def _fake_roles(*, user_id: str, **_: Any) -> list[str]:
        return next(labels for candidate_id, labels in TOKENS.values() if candidate_id == user_id)

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_user)
    monkeypatch.setattr(security, "_fetch_user_roles", _fake_roles)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("RC_SUPABASE_URL", None)
    os.environ.pop("RC_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()


def test_campaign_lifecycle_and_proposal_consensus_over_http(api_client: TestClient) -> None:
    campaign_id = _active_campaign(api_client, validator_unit_ids=[1, 2])

    submitted = api_client.post(
        "/proposals",
        data={
            "campaign_id": str(campaign_id),
            "position_id": "1",
            "facility_code": "DFSSA000001",
            "candidate_identifier": "GODE561231HDFRRL09",
        },
        files={"cv": PDF_FILE},
        headers=_auth("coordinacion"),
    )
    assert submitted.status_code == 201
    proposal = submitted.json()
    assert proposal["status"] == "IN_VALIDATION"
    assert len(proposal["validations"]) == 2

    pending = api_client.get("/validations/pending", headers=_auth("validador"))
    assert pending.status_code == 200
    assert [item["validation"]["id"] for item in pending.json()] == [
        validation["id"] for validation in proposal["validations"]
    ]

    first = api_client.post(
        f"/validations/{proposal['validations'][0]['id']}/decision",
        json={"decision": "APPROVED"},
        headers=_auth("validador"),
    )
    assert first.status_code == 200
    assert first.json()["proposal"]["status"] == "IN_VALIDATION"

    second = api_client.post(
        f"/validations/{proposal['validations'][1]['id']}/decision",
        json={"decision": "REJECTED", "reason": "CV incompleto"},
        headers=_auth("validador"),
    )
    assert second.status_code == 200
    assert second.json()["proposal"]["status"] == "REJECTED"
    assert second.json()["status_changed"] is True

    again = api_client.post(
        f"/validations/{proposal['validations'][1]['id']}/decision",
        json={"decision": "APPROVED"},
        headers=_auth("validador"),
    )
    assert again.status_code == 409

    cv_url = api_client.get(f"/proposals/{proposal['id']}/cv-url", headers=_auth("rh"))
    assert cv_url.status_code == 200
    assert cv_url.json()["expires_in"] == 300

    summary = api_client.get("/dashboard/summary", headers=_auth("dg"))
    assert summary.status_code == 200
    body = summary.json()
    assert body["campaigns_by_status"]["ACTIVE"] == 1
    assert body["proposals_by_status"]["REJECTED"] == 1
    assert body["total_proposals"] == 1


def test_campaign_detail_lists_positions_facilities_and_transitions(api_client: TestClient) -> None:
    created = api_client.post("/campaigns", json={"name": "Detalle"}, headers=_auth("planeacion"))
    campaign_id = created.json()["id"]
    assert created.json()["available_transitions"] == ["UNDER_REVIEW"]

    position = api_client.post(
        f"/campaigns/{campaign_id}/positions",
        json={"position_id": 2, "slots_authorized": 3},
        headers=_auth("planeacion"),
    )
    assert position.status_code == 201
    facilities = api_client.post(
        f"/campaigns/{campaign_id}/facilities",
        json={"codes": "DFSSA000001\nNOEXISTE"},
        headers=_auth("planeacion"),
    )
    assert facilities.json() == {"added": ["DFSSA000001"], "skipped": [], "invalid": ["NOEXISTE"]}

    detail = api_client.get(f"/campaigns/{campaign_id}", headers=_auth("salud"))
    assert detail.status_code == 200
    body = detail.json()
    assert body["campaign"]["available_transitions"] == []
    assert body["positions"][0]["position_name"] == "Enfermera General"
    assert body["facilities"][0]["facility_name"] == "Centro de Salud Centro"

    removed = api_client.delete(
        f"/campaigns/{campaign_id}/positions/{position.json()['id']}",
        headers=_auth("planeacion"),
    )
    assert removed.status_code == 200
    assert removed.json() == {"validators_removed": 0}


@pytest.mark.parametrize(
    ("method", "path", "token", "payload"),
    [
        ("post", "/campaigns", "coordinacion", {"name": "No autorizado"}),
        ("post", "/campaigns", "dg", {"name": "Solo lectura"}),
        ("get", "/campaigns", "validador", None),
        ("get", "/dashboard/summary", "planeacion", None),
        ("get", "/validations/pending", "rh", None),
        ("get", "/proposals", "planeacion", None),
    ],
)
def test_role_gate_returns_forbidden(
    api_client: TestClient,
    method: str,
    path: str,
    token: str,
    payload: dict[str, Any] | None,
) -> None:
    kwargs: dict[str, Any] = {"headers": _auth(token)}
    if payload is not None:
        kwargs["json"] = payload
    response = getattr(api_client, method)(path, **kwargs)
    assert response.status_code == 403


def test_transition_errors_map_to_http_codes(api_client: TestClient) -> None:
    created = api_client.post("/campaigns", json={"name": "Sin posiciones"}, headers=_auth("planeacion"))
    campaign_id = created.json()["id"]

    not_ready = api_client.post(
        f"/campaigns/{campaign_id}/transitions", json={"status": "UNDER_REVIEW"}, headers=_auth("planeacion")
    )
    assert not_ready.status_code == 422

    wrong_role = api_client.post(
        f"/campaigns/{campaign_id}/transitions", json={"status": "UNDER_REVIEW"}, headers=_auth("rh")
    )
    assert wrong_role.status_code == 403

    illegal = api_client.post(
        f"/campaigns/{campaign_id}/transitions", json={"status": "ACTIVE"}, headers=_auth("rh")
    )
    assert illegal.status_code == 422

    missing = api_client.post("/campaigns/999/transitions", json={"status": "UNDER_REVIEW"}, headers=_auth("planeacion"))
    assert missing.status_code == 404


def test_duplicate_position_is_conflict(api_client: TestClient) -> None:
    campaign_id = api_client.post("/campaigns", json={"name": "Duplicada"}, headers=_auth("planeacion")).json()["id"]
    payload = {"position_id": 1, "slots_authorized": 1}

    assert api_client.post(f"/campaigns/{campaign_id}/positions", json=payload, headers=_auth("planeacion")).status_code == 201
    assert api_client.post(f"/campaigns/{campaign_id}/positions", json=payload, headers=_auth("planeacion")).status_code == 409


def test_proposal_rejects_non_pdf_and_bad_identifier(api_client: TestClient) -> None:
    campaign_id = _active_campaign(api_client, validator_unit_ids=[1])
    form = {
        "campaign_id": str(campaign_id),
        "position_id": "1",
        "facility_code": "DFSSA000001",
        "candidate_identifier": "GODE561231HDFRRL09",
    }

    word = api_client.post(
        "/proposals",
        data=form,
        files={"cv": ("cv.docx", b"PK", "application/vnd.openxmlformats-officedocument.wordprocessingml.document")},
        headers=_auth("coordinacion"),
    )
    assert word.status_code == 422

    bad_curp = api_client.post(
        "/proposals",
        data={**form, "candidate_identifier": "INVALID"},
        files={"cv": PDF_FILE},
        headers=_auth("coordinacion"),
    )
    assert bad_curp.status_code == 422


def test_proposal_role_gate_precedes_cv_validation(api_client: TestClient) -> None:
    campaign_id = _active_campaign(api_client, validator_unit_ids=[1])
    form = {
        "campaign_id": str(campaign_id),
        "position_id": "1",
        "facility_code": "DFSSA000001",
        "candidate_identifier": "GODE561231HDFRRL09",
    }

    response = api_client.post(
        "/proposals",
        data=form,
        files={"cv": ("cv.txt", b"hello", "text/plain")},
        headers=_auth("validador"),
    )
    assert response.status_code == 403


def test_oversized_cv_is_rejected(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    campaign_id = _active_campaign(api_client, validator_unit_ids=[1])
    monkeypatch.setenv("RC_CV_MAX_BYTES", "16")
    get_settings.cache_clear()

    response = api_client.post(
        "/proposals",
        data={
            "campaign_id": str(campaign_id),
            "position_id": "1",
            "facility_code": "DFSSA000001",
            "candidate_identifier": "GODE561231HDFRRL09",
        },
        files={"cv": ("cv.pdf", b"%PDF-1.4 " + b"x" * 64, "application/pdf")},
        headers=_auth("coordinacion"),
    )
    assert response.status_code == 422
    assert "must not exceed" in response.json()["detail"]
    assert api_client.get("/proposals", headers=_auth("coordinacion")).json() == []


def test_catalogs_are_readable_by_every_role(api_client: TestClient) -> None:
    for token in TOKENS:
        response = api_client.get("/catalogs/validator-units", headers=_auth(token))
        assert response.status_code == 200
        assert [row["id"] for row in response.json()] == [2, 1]

    assert api_client.get("/catalogs/postings", headers=_auth("rh")).status_code == 404


def test_unknown_token_is_unauthorized(api_client: TestClient) -> None:
    assert api_client.get("/campaigns", headers=_auth("intruso")).status_code == 401


def test_unavailable_store_is_service_unavailable(api_client: TestClient) -> None:
    app.dependency_overrides[get_data_store] = lambda: PostgresDataStore(
        database_url=None,
        min_pool_size=1,
        max_pool_size=1,
        command_timeout_seconds=1.0,
    )

    response = api_client.get("/campaigns", headers=_auth("planeacion"))
    assert response.status_code == 503


def _active_campaign(client: TestClient, *, validator_unit_ids: list[int]) -> int:
    created = client.post("/campaigns", json={"name": "Campaña Enero 2025"}, headers=_auth("planeacion"))
    assert created.status_code == 201
    campaign_id = created.json()["id"]
    position = client.post(
        f"/campaigns/{campaign_id}/positions",
        json={"position_id": 1, "slots_authorized": 10},
        headers=_auth("planeacion"),
    )
    client.post(f"/campaigns/{campaign_id}/facilities", json={"codes": ["DFSSA000001"]}, headers=_auth("planeacion"))
    validators = client.post(
        f"/campaigns/{campaign_id}/validators",
        json={"campaign_position_id": position.json()["id"], "validator_unit_ids": validator_unit_ids},
        headers=_auth("planeacion"),
    )
    assert validators.status_code == 200

    for token, status in (("planeacion", "UNDER_REVIEW"), ("salud", "APPROVED"), ("rh", "ACTIVE")):
        response = client.post(f"/campaigns/{campaign_id}/transitions", json={"status": status}, headers=_auth(token))
        assert response.status_code == 200
        assert response.json()["status"] == status
    return campaign_id


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
