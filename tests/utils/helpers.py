"""Test helper functions."""

from typing import Optional

from src.models.identity import Identity
from src.services.api_client import ApiClient
from src.services.session_store import BACKEND_TOKEN_KEY, MemorySessionStore
from src.utils.config import ClientConfig
from tests.utils.fake_backend import FakeBackend


def create_config(**overrides) -> ClientConfig:
    """ClientConfig pointing at the fake backend's base URL."""
    values = {"api_base_url": "http://localhost:5000/api", "reconcile_timeout_seconds": 0.5}
    values.update(overrides)
    return ClientConfig(**values)


def create_api_client(backend: FakeBackend, user: Optional[dict] = None, **config_overrides) -> ApiClient:
    """ApiClient wired to ``backend``, authenticated as ``user`` when given."""
    initial = {BACKEND_TOKEN_KEY: backend.backend_token_for(user)} if user else {}
    return ApiClient(create_config(**config_overrides), MemorySessionStore(initial), transport=backend.transport)


def identity_from_user(user: dict) -> Identity:
    """The reconciled Identity a backend user document corresponds to."""
    return Identity.model_validate(user)
