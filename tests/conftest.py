"""Pytest fixtures for backend tests."""

from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient


def _set_default_env() -> None:
    os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
    os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")


_set_default_env()

from splitflow.services import common  # noqa: E402
from tests.fakes import FakeSupabase, seed_project, seed_user  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a FastAPI test client."""
    from splitflow.main import app

    return TestClient(app)


@pytest.fixture(autouse=True)
def _clear_user_cache():
    common._user_cache.clear()
    yield
    common._user_cache.clear()


@pytest.fixture
def db() -> FakeSupabase:
    """Fake database with four users.

    alice and bob are investors, carol is a passive investor and root is a
    super admin observer.
    """
    fake = FakeSupabase()
    seed_user(fake, "alice", "Alice")
    seed_user(fake, "bob", "Bob")
    seed_user(fake, "carol", "Carol")
    seed_user(fake, "root", "Root", role="super_admin")
    return fake


@pytest.fixture
def solo_project(db: FakeSupabase) -> str:
    seed_project(db, "p-solo", "alice", members=[("alice", "active")], target_amount=10000)
    return "p-solo"


@pytest.fixture
def duo_project(db: FakeSupabase) -> str:
    seed_project(
        db,
        "p-duo",
        "alice",
        members=[("alice", "active"), ("bob", "active"), ("carol", "passive"), ("root", "active")],
        target_amount=50000,
    )
    return "p-duo"
