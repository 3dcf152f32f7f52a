import logging
from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from app.core.auth import Actor
from app.core.authorization import parse_roles
from app.core.config import Settings, get_settings
from app.core.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


class RoleFetchError(Exception):
    """Raised when the role lookup fails with a retryable error."""


async def get_current_actor(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Actor:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.supabase_url or not settings.supabase_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    user = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    policy = RetryPolicy(
        max_attempts=settings.role_fetch_max_attempts,
        base_seconds=settings.role_fetch_retry_base_seconds,
        max_seconds=settings.role_fetch_retry_max_seconds,
    )
    try:
        labels = await call_with_retry(
            lambda: _fetch_user_roles(
                supabase_url=settings.supabase_url,
                api_key=settings.supabase_service_role_key or settings.supabase_anon_key,
                token=token,
                user_id=user_id,
                timeout_seconds=settings.auth_timeout_seconds,
            ),
            policy=policy,
            retry_on=(RoleFetchError,),
            description=f"role lookup user_id={user_id}",
        )
    except RoleFetchError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="role lookup unavailable",
        ) from exc

    email = user.get("email")
    return Actor(
        id=user_id,
        roles=parse_roles(labels),
        email=email if isinstance(email, str) else None,
    )


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification failed",
        )

    return response.json()


async def _fetch_user_roles(
    *,
    supabase_url: str,
    api_key: str,
    token: str,
    user_id: str,
    timeout_seconds: float,
) -> list[str]:
    """Load role labels for ``user_id`` from ``user_roles`` joined to ``roles``."""
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": api_key,
        "Accept": "application/json",
    }
    url = f"{supabase_url.rstrip('/')}/rest/v1/user_roles"
    params = {"select": "roles(name)", "user_id": f"eq.{user_id}"}

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers, params=params)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise RoleFetchError(f"role lookup transport error: {exc}") from exc

    if response.status_code >= 500 or response.status_code == 429:
        raise RoleFetchError(f"role lookup failed status={response.status_code}")
    if response.status_code != 200:
        logger.warning("role lookup rejected user_id=%s status=%s", user_id, response.status_code)
        return []

    return _extract_role_labels(response.json())


def _extract_role_labels(payload: Any) -> list[str]:
    if not isinstance(payload, list):
        return []
    labels: list[str] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        role = item.get("roles")
        # PostgREST embeds a to-one relation as an object, to-many as a list.
        entries = role if isinstance(role, list) else [role]
        for entry in entries:
            if isinstance(entry, dict) and isinstance(entry.get("name"), str):
                labels.append(entry["name"])
    return labels
