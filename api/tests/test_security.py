from __future__ import annotations

import os
from typing import Any

import pytest
from fastapi.testclient import TestClient

import app.core.security as security
from app.core.config import get_settings
from app.main import app


@pytest.fixture
def auth_client() -> TestClient:
    os.environ["RC_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["RC_SUPABASE_ANON_KEY"] = "anon-key"
    os.environ["RC_ROLE_FETCH_RETRY_BASE_SECONDS"] = "0"
    get_settings.cache_clear()

    with TestClient(app) as client:
        yield client

    for key in ("RC_SUPABASE_URL", "RC_SUPABASE_ANON_KEY", "RC_ROLE_FETCH_RETRY_BASE_SECONDS"):
        os.environ.pop(key, None)
    get_settings.cache_clear()


def _mock_supabase_user(monkeypatch: pytest.MonkeyPatch, user: dict[str, Any]) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)


def test_me_requires_bearer_token(auth_client: TestClient) -> None:
    assert auth_client.get("/me").status_code == 401
    assert auth_client.get("/me", headers={"Authorization": "Basic abc"}).status_code == 401
    assert auth_client.get("/me", headers={"Authorization": "Bearer  "}).status_code == 401


def test_me_reports_roles_and_navigation(auth_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "hr-1", "email": "rh@example.gob.mx"})

    async def _fake_roles(**kwargs: Any) -> list[str]:
        assert kwargs["user_id"] == "hr-1"
        return ["RH", "UNKNOWN"]

    monkeypatch.setattr(security, "_fetch_user_roles", _fake_roles)

    response = auth_client.get("/me", headers={"Authorization": "Bearer token"})

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "hr-1"
    assert body["email"] == "rh@example.gob.mx"
    assert body["roles"] == ["RH"]
    assert body["role_labels"] == ["Recursos Humanos"]
    assert [item["href"] for item in body["navigation"]] == ["/", "/rh/campaigns", "/rh/dashboard"]


def test_role_lookup_is_retried_before_succeeding(auth_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "planner-1"})
    attempts = 0

    async def _flaky_roles(**_: Any) -> list[str]:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise security.RoleFetchError("temporarily unavailable")
        return ["PLANEACION"]

    monkeypatch.setattr(security, "_fetch_user_roles", _flaky_roles)

    response = auth_client.get("/me", headers={"Authorization": "Bearer token"})

    assert response.status_code == 200
    assert response.json()["roles"] == ["PLANEACION"]
    assert attempts == 3


def test_role_lookup_exhaustion_is_service_unavailable(
    auth_client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    _mock_supabase_user(monkeypatch, {"id": "planner-1"})

    async def _failing_roles(**_: Any) -> list[str]:
        raise security.RoleFetchError("down")

    monkeypatch.setattr(security, "_fetch_user_roles", _failing_roles)

    response = auth_client.get("/me", headers={"Authorization": "Bearer token"})
    assert response.status_code == 503


def test_user_without_id_is_rejected(auth_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"email": "nobody@example.gob.mx"})

    response = auth_client.get("/me", headers={"Authorization": "Bearer token"})
    assert response.status_code == 401


def test_missing_supabase_configuration_is_service_unavailable() -> None:
    get_settings.cache_clear()
    client = TestClient(app)
    response = client.get("/me", headers={"Authorization": "Bearer token"})
    assert response.status_code == 503


def test_extract_role_labels_accepts_object_and_list_embeds() -> None:
    payload = [
        {"roles": {"name": "PLANEACION"}},
        {"roles": [{"name": "RH"}, {"name": None}]},
        {"roles": None},
        "garbage",
    ]
    assert security._extract_role_labels(payload) == ["PLANEACION", "RH"]
    assert security._extract_role_labels({"message": "error"}) == []
