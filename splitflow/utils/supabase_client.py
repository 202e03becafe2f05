"""Cached Supabase clients for the finance backend."""

from __future__ import annotations

from functools import lru_cache

import httpx
from supabase import Client, create_client
from supabase.lib.client_options import SyncClientOptions

from splitflow.config import settings


def _http_client(timeout_seconds: int) -> httpx.Client:
    max_connections = max(10, settings.supabase_http_max_connections)
    keepalive = max(5, min(max_connections, settings.supabase_http_max_keepalive_connections))
    return httpx.Client(
        timeout=httpx.Timeout(timeout_seconds),
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=keepalive,
        ),
    )


def _client_for_key(api_key: str) -> Client:
    timeout_seconds = max(1, settings.supabase_postgrest_timeout_seconds)
    options = SyncClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        postgrest_client_timeout=timeout_seconds,
        storage_client_timeout=timeout_seconds,
        function_client_timeout=min(timeout_seconds, 30),
        httpx_client=_http_client(timeout_seconds),
    )
    return create_client(settings.supabase_url, api_key, options=options)


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Return the anon-key client, used only to validate bearer tokens."""
    return _client_for_key(settings.supabase_anon_key)


@lru_cache(maxsize=1)
def get_service_client() -> Client:
    """Return the service-role client.

    Row level security is bypassed, so every service call performs its own
    project access checks before reading or writing finance rows.
    """
    return _client_for_key(settings.supabase_service_key)
