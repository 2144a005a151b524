"""
MarketplaceClient - wires configuration, storage, the identity provider and the
backend services into one object with a single lifecycle.
"""

from typing import Optional

import httpx

from src.models.identity import Identity, SessionState
from src.services.api_client import ApiClient
from src.services.identity_provider import IdentityProvider, SupabaseIdentityProvider
from src.services.offers import OfferCoordinator
from src.services.payments import PaymentProcessor, StripePaymentProcessor
from src.services.properties import PropertyService
from src.services.reviews import ReviewService
from src.services.session_manager import SessionManager
from src.services.session_store import FileSessionStore, MemorySessionStore, SessionStore
from src.services.users import UserService
from src.services.wishlist import WishlistService
from src.utils.config import ClientConfig
from src.utils.logging import get_structured_logger, setup_logging

logger = get_structured_logger(__name__)


def build_store(config: ClientConfig) -> SessionStore:
    if config.session_file:
        return FileSessionStore(config.session_file)
    return MemorySessionStore()


class MarketplaceClient:
    """
    Composition root for a marketplace session.

    Usage:
        async with MarketplaceClient.from_env() as client:
            await client.session.sign_in(email, password)
            listings = await client.properties.list_public()
    """

    def __init__(
        self,
        config: ClientConfig,
        provider: Optional[IdentityProvider] = None,
        store: Optional[SessionStore] = None,
        processor: Optional[PaymentProcessor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self.store = store if store is not None else build_store(config)
        self.api = ApiClient(config, self.store, transport=transport)

        if provider is None:
            provider = SupabaseIdentityProvider(config.supabase_url or "", config.supabase_anon_key or "")
        self.provider = provider

        if processor is None and config.stripe_publishable_key:
            processor = StripePaymentProcessor(config.stripe_publishable_key)

        self.session = SessionManager(
            provider,
            self.api,
            self.store,
            reconcile_timeout=config.reconcile_timeout_seconds
        )
        identity = self._current_identity
        self.properties = PropertyService(self.api, identity)
        self.offers = OfferCoordinator(self.api, identity, processor)
        self.wishlist = WishlistService(self.api, identity)
        self.reviews = ReviewService(self.api, identity)
        self.users = UserService(self.api, identity, self.session.refresh)

    @classmethod
    def from_env(cls, **kwargs) -> "MarketplaceClient":
        """Configure logging and build a client from environment variables."""
        setup_logging()
        return cls(ClientConfig.from_env(), **kwargs)

    def _current_identity(self) -> Optional[Identity]:
        return self.session.identity

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.identity

    async def start(self) -> SessionState:
        """Restore the persisted session, then start listening to the provider."""
        state = self.session.start()
        start_provider = getattr(self.provider, "start", None)
        if callable(start_provider):
            start_provider()
        logger.info("Marketplace client started", api_base_url=self.config.api_base_url, phase=state.phase.value)
        return state

    async def close(self) -> None:
        self.session.close()
        stop_provider = getattr(self.provider, "stop", None)
        if callable(stop_provider):
            stop_provider()
        await self.api.close()

    async def __aenter__(self) -> "MarketplaceClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
