"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Header
from supabase import Client

from splitflow.config import settings
from splitflow.services.common import SupabaseService
from splitflow.utils.cache import TTLCache
from splitflow.utils.errors import UnauthorizedError
from splitflow.utils.supabase_client import get_service_client, get_supabase_client

_token_cache = TTLCache(settings.auth_token_cache_max_entries)
_profile_cache = TTLCache(settings.data_cache_max_entries)


def get_authenticated_user(authorization: str = Header(None)) -> Any:
    """Extract and validate a Supabase JWT from the Authorization header.

    Raises:
        UnauthorizedError: 401 if the header is missing, malformed, or
            the token cannot be validated.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing authorization header")

    token = authorization.split(" ", 1)[1]
    cached_user = _token_cache.get(token)
    if cached_user is not None:
        return cached_user

    try:
        response = get_supabase_client().auth.get_user(token)
    except Exception as exc:
        raise UnauthorizedError("Invalid or expired token") from exc
    if not response or not response.user:
        raise UnauthorizedError("Invalid token")

    _token_cache.set(token, response.user, settings.auth_token_cache_ttl_seconds)
    return response.user


def get_current_user_id(user: Any) -> str:
    """Extract a stable user id string from the Supabase user object."""
    return str(user.id)


def get_db_client() -> Client:
    """Return the privileged Supabase client used by backend services."""
    return get_service_client()


def load_actor(user_id: str, client: Client) -> dict[str, Any]:
    """Return the caller profile ``{"id", "role", "name"}`` from ``users``.

    Users without a profile row are treated as plain investors.
    """
    cached = _profile_cache.get(user_id)
    if cached is not None:
        return dict(cached)

    db = SupabaseService(client)
    row = db.find_one("users", {"id": user_id}, columns="id,name,role") or {}
    actor = {
        "id": user_id,
        "role": str(row.get("role") or "investor"),
        "name": row.get("name"),
    }
    _profile_cache.set(user_id, actor, settings.user_cache_ttl_seconds)
    return dict(actor)


def get_current_actor(
    user: Any = Depends(get_authenticated_user),
    client: Client = Depends(get_db_client),
) -> dict[str, Any]:
    """Return the authenticated caller with their platform role."""
    return load_actor(get_current_user_id(user), client)
