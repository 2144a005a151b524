"""Identity provider abstraction, its event channel, and the Supabase Auth adapter."""

import asyncio
import concurrent.futures
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field
from supabase import Client, create_client

from src.utils.errors import IdentityProviderError
from src.utils.logging import get_structured_logger, mask_email, mask_user_id

logger = get_structured_logger(__name__)


class ProviderIdentity(BaseModel):
    """Identity as reported by the external provider."""
    provider_id: str = Field(..., description="Provider user ID")
    email: str = Field(..., description="Email address")
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


IdentityListener = Callable[[Optional[ProviderIdentity]], Awaitable[None]]


def _log_publish_failure(future: concurrent.futures.Future) -> None:
    """Log a listener failure that would otherwise vanish with the dropped future."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(
            "Identity change listener failed",
            error=str(error),
            error_type=type(error).__name__
        )


class Subscription:
    """Handle returned by IdentityEventChannel.subscribe."""

    def __init__(self, channel: "IdentityEventChannel", listener: IdentityListener):
        self._channel = channel
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._remove(self._listener)
            self.active = False


class IdentityEventChannel:
    """Publisher/subscriber channel for identity-state changes."""

    def __init__(self):
        self._listeners: list[IdentityListener] = []

    def subscribe(self, listener: IdentityListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: IdentityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    async def publish(self, identity: Optional[ProviderIdentity]) -> None:
        """Deliver ``identity`` (None for signed out) to every subscriber in order."""
        for listener in list(self._listeners):
            await listener(identity)


class IdentityProvider:
    """External identity provider contract consumed by the session manager."""

    def __init__(self):
        self.events = IdentityEventChannel()

    def subscribe(self, listener: IdentityListener) -> Subscription:
        return self.events.subscribe(listener)

    async def get_token(self, force_refresh: bool = False) -> str:
        """Return a provider token for the current user, refreshing it when asked."""
        raise NotImplementedError

    async def sign_in_with_password(self, email: str, password: str) -> ProviderIdentity:
        raise NotImplementedError

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> ProviderIdentity:
        raise NotImplementedError

    async def sign_out(self) -> None:
        raise NotImplementedError

    def current_identity(self) -> Optional[ProviderIdentity]:
        raise NotImplementedError


# Supabase Auth events that change who is signed in
_SIGNED_IN_EVENTS = {"SIGNED_IN", "INITIAL_SESSION", "USER_UPDATED"}
_SIGNED_OUT_EVENTS = {"SIGNED_OUT"}


def _identity_from_supabase_user(user: Any) -> ProviderIdentity:
    metadata = getattr(user, "user_metadata", None) or {}
    return ProviderIdentity(
        provider_id=user.id,
        email=user.email,
        display_name=metadata.get("display_name") or metadata.get("full_name"),
        photo_url=metadata.get("avatar_url"),
    )


class SupabaseIdentityProvider(IdentityProvider):
    """
    Identity provider backed by Supabase Auth.

    The supabase-py client is synchronous, so calls run in a worker thread and
    auth-state callbacks are handed back to the event loop that called ``start``.
    """

    def __init__(self, url: str, anon_key: str, client: Optional[Client] = None):
        super().__init__()
        if client is None and (not url or not anon_key):
            raise IdentityProviderError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        self._client = client or create_client(url, anon_key)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._auth_subscription: Any = None

    def start(self) -> None:
        """Begin forwarding Supabase auth-state changes to subscribers."""
        if self._auth_subscription is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._auth_subscription = self._client.auth.on_auth_state_change(self._on_auth_state_change)
        logger.info("Supabase auth listener registered")

    def stop(self) -> None:
        if self._auth_subscription is not None:
            self._auth_subscription.unsubscribe()
            self._auth_subscription = None
            logger.info("Supabase auth listener removed")

    def _on_auth_state_change(self, event: str, session: Any) -> None:
        if event in _SIGNED_OUT_EVENTS or (event in _SIGNED_IN_EVENTS and session is None):
            identity = None
        elif event in _SIGNED_IN_EVENTS:
            identity = _identity_from_supabase_user(session.user)
        else:
            return

        logger.debug(
            "Supabase auth state changed",
            auth_event=event,
            provider_id=mask_user_id(identity.provider_id) if identity else None
        )
        if self._loop is not None and not self._loop.is_closed():
            future = asyncio.run_coroutine_threadsafe(self.events.publish(identity), self._loop)
            future.add_done_callback(_log_publish_failure)

    async def get_token(self, force_refresh: bool = False) -> str:
        try:
            if force_refresh:
                response = await asyncio.to_thread(self._client.auth.refresh_session)
                session = response.session
            else:
                session = await asyncio.to_thread(self._client.auth.get_session)
        except Exception as e:
            raise IdentityProviderError(f"Failed to obtain provider token: {e}") from e

        if session is None or not session.access_token:
            raise IdentityProviderError("No active provider session")
        return session.access_token

    async def sign_in_with_password(self, email: str, password: str) -> ProviderIdentity:
        try:
            response = await asyncio.to_thread(
                self._client.auth.sign_in_with_password,
                {"email": email, "password": password}
            )
        except Exception as e:
            raise IdentityProviderError(f"Sign-in failed: {e}") from e

        logger.info("Provider sign-in succeeded", email=mask_email(email))
        return _identity_from_supabase_user(response.user)

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> ProviderIdentity:
        credentials: dict[str, Any] = {"email": email, "password": password}
        if display_name:
            credentials["options"] = {"data": {"display_name": display_name}}
        try:
            response = await asyncio.to_thread(self._client.auth.sign_up, credentials)
        except Exception as e:
            raise IdentityProviderError(f"Sign-up failed: {e}") from e

        if response.user is None:
            raise IdentityProviderError("Sign-up returned no user")
        logger.info("Provider sign-up succeeded", email=mask_email(email))
        return _identity_from_supabase_user(response.user)

    async def sign_out(self) -> None:
        try:
            await asyncio.to_thread(self._client.auth.sign_out)
        except Exception as e:
            raise IdentityProviderError(f"Sign-out failed: {e}") from e

    def current_identity(self) -> Optional[ProviderIdentity]:
        session = self._client.auth.get_session()
        if session is None or session.user is None:
            return None
        return _identity_from_supabase_user(session.user)
