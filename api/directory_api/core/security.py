from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, Request, status

from directory_api.core.auth import Principal
from directory_api.core.config import Settings, get_settings
from directory_api.services.repository import RepositoryUnavailableError, get_repository

ROLE_SCOPES: dict[str, set[str]] = {
    "USER": set(),
    "BUSINESS": set(),
    "PROFESSIONAL": set(),
    "ADMIN": {"moderation:read", "moderation:write", "audit:read", "audit:write", "admin:write"},
}


async def get_human_principal(
    request: Request,
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="human auth requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.clerk_secret_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Clerk auth is not configured",
        )

    client_payload = await _fetch_clerk_client(
        clerk_api_url=settings.clerk_api_url,
        clerk_secret_key=settings.clerk_secret_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    clerk_user_id = _resolve_session_user_id(client_payload)
    if not clerk_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    try:
        user = await repository.get_user_by_clerk_id(clerk_user_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if not user or user.get("status") != "APPROVED":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user inactive or not found")

    role = str(user.get("role") or "USER").upper()
    return Principal(
        subject=clerk_user_id,
        actor_id=user["id"],
        role=role,
        scopes=set(ROLE_SCOPES.get(role, ROLE_SCOPES["USER"])),
        email=user.get("email"),
        source_address=request.client.host if request.client else None,
    )


async def _fetch_clerk_client(
    *,
    clerk_api_url: str,
    clerk_secret_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {"Authorization": f"Bearer {clerk_secret_key}"}
    url = f"{clerk_api_url.rstrip('/')}/v1/clients/verify"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.post(url, json={"token": token}, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Clerk auth verification unavailable",
        ) from exc

    if response.status_code in {400, 401, 403, 404}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Clerk auth verification failed",
        )

    return response.json()


def _resolve_session_user_id(client_payload: dict[str, Any]) -> str | None:
    sessions = client_payload.get("sessions")
    if not isinstance(sessions, list):
        return None

    active_session_id = client_payload.get("last_active_session_id")
    for session in sessions:
        if not isinstance(session, dict) or session.get("status") != "active":
            continue
        if active_session_id and session.get("id") != active_session_id:
            continue
        user_id = session.get("user_id")
        if isinstance(user_id, str) and user_id:
            return user_id
    return None
