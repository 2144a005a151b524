"""Shared pytest fixtures and configuration."""

import os
import pytest

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_FORMAT", "text")

from src.models.identity import Role
from src.services.api_client import ApiClient
from src.services.session_manager import SessionManager
from src.services.session_store import MemorySessionStore
from tests.utils.factories import create_property_data
from tests.utils.fake_backend import FakeBackend
from tests.utils.fakes import FakeIdentityProvider, FakePaymentProcessor
from tests.utils.helpers import create_config


@pytest.fixture
def backend():
    """In-memory marketplace backend."""
    return FakeBackend()


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def config():
    return create_config()


@pytest.fixture
def api(backend, store, config):
    """ApiClient bound to the shared store, talking to the fake backend."""
    return ApiClient(config, store, transport=backend.transport)


@pytest.fixture
def session_manager(provider, api, store, config):
    return SessionManager(provider, api, store, reconcile_timeout=config.reconcile_timeout_seconds)


@pytest.fixture
def processor():
    return FakePaymentProcessor()


@pytest.fixture
def agent_user(backend):
    return backend.add_user(role=Role.AGENT.value)


@pytest.fixture
def buyer_user(backend):
    # Backend still reports buyers as "user"
    return backend.add_user(role="user")


@pytest.fixture
def admin_user(backend):
    return backend.add_user(role=Role.ADMIN.value)


@pytest.fixture
def listing_data(backend, agent_user):
    """Verified, listed property owned by ``agent_user`` priced 100k-300k."""
    return backend.add_property(create_property_data(
        agent_email=agent_user["email"],
        agentName=agent_user["displayName"],
    ))
