"""
Session manager - reconciles the identity provider's sign-in state with the backend session.

State machine:
    signed_out -> optimistic -> reconciled
    optimistic is a valid resting state when the backend never answers.
    any signed-in phase -> signed_out when the provider reports sign-out.
"""

import asyncio
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from src.models.identity import Identity, Role, SessionPhase, SessionState, merge_backend_identity
from src.services.api_client import ApiClient
from src.services.identity_provider import IdentityProvider, ProviderIdentity, Subscription
from src.services.session_store import BACKEND_TOKEN_KEY, TOKEN_KEY, USER_KEY, SessionStore
from src.utils.errors import AuthDegraded, IdentityProviderError, MarketplaceError
from src.utils.logging import correlation_context, get_structured_logger, mask_email

logger = get_structured_logger(__name__)

LOGIN_PATH = "/auth/login"
DEFAULT_RECONCILE_TIMEOUT = 3.0


class SessionManager:
    """Owns the current Identity and the token pair in durable storage."""

    def __init__(
        self,
        provider: IdentityProvider,
        api: ApiClient,
        store: SessionStore,
        reconcile_timeout: float = DEFAULT_RECONCILE_TIMEOUT
    ):
        self.provider = provider
        self.api = api
        self.store = store
        self.reconcile_timeout = reconcile_timeout
        self._state = SessionState.signed_out()
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._initialized = False
        self._changed = asyncio.Condition()

    # Lifecycle

    def start(self) -> SessionState:
        """
        Restore any persisted identity and subscribe to provider events.

        Restoring makes no network calls; the identity shows as optimistic until
        the provider's first event triggers reconciliation.
        """
        if self._subscription is not None:
            return self._state

        persisted = self.store.load_identity()
        if persisted is not None:
            self._state = SessionState.optimistic(persisted)
            logger.info(
                "Restored persisted session",
                email=mask_email(persisted.email),
                role=persisted.role.value,
                has_backend_token=bool(self.store.get(BACKEND_TOKEN_KEY))
            )

        self._subscription = self.provider.subscribe(self.on_identity_changed)
        return self._state

    def close(self) -> None:
        """Unsubscribe from the provider. Persisted state is left untouched."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    # State access

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identity(self) -> Optional[Identity]:
        return self._state.identity

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    async def _set_state(self, state: SessionState) -> None:
        self._state = state
        async with self._changed:
            self._changed.notify_all()

    async def wait_for(
        self,
        predicate: Callable[[SessionState], bool],
        timeout: Optional[float] = None
    ) -> SessionState:
        """Wait until ``predicate(state)`` holds. Raises asyncio.TimeoutError on timeout."""
        async def _wait() -> None:
            async with self._changed:
                await self._changed.wait_for(lambda: predicate(self._state))

        await asyncio.wait_for(_wait(), timeout)
        return self._state

    async def wait_until_ready(self, timeout: Optional[float] = None) -> SessionState:
        """Wait for the first provider event to be processed."""
        return await self.wait_for(lambda _: self._initialized, timeout)

    # Provider event handling

    async def on_identity_changed(self, provider_identity: Optional[ProviderIdentity]) -> SessionState:
        """Single entry point for provider sign-in state changes."""
        self._generation += 1
        generation = self._generation

        try:
            with correlation_context():
                if provider_identity is None:
                    await self._sign_out_locally()
                else:
                    await self._sign_in_locally(provider_identity, generation)
        finally:
            if not self._initialized:
                self._initialized = True
                await self._set_state(self._state)
        return self._state

    async def _sign_out_locally(self) -> None:
        self.store.clear()
        await self._set_state(SessionState.signed_out())
        logger.info("User signed out, session state cleared")

    async def _sign_in_locally(self, provider_identity: ProviderIdentity, generation: int) -> None:
        provisional = Identity.from_provider(
            provider_id=provider_identity.provider_id,
            email=provider_identity.email,
            display_name=provider_identity.display_name,
            photo_url=provider_identity.photo_url,
        )
        self._persisted_for(provisional.provider_id)

        try:
            provider_token = await self.provider.get_token()
        except IdentityProviderError as e:
            logger.error("Could not obtain provider token, using provider data only", error=str(e))
            if generation == self._generation:
                current = self._persisted_for(provisional.provider_id) or provisional
                self.store.save_identity(current)
                await self._set_state(SessionState.optimistic(current))
            return

        if generation != self._generation:
            return

        current = self._persisted_for(provisional.provider_id)
        self.store.set(TOKEN_KEY, provider_token)
        if current is None:
            current = provisional
            self.store.save_identity(provisional)
        await self._set_state(SessionState.optimistic(current))
        logger.info("User signed in (optimistic)", email=mask_email(current.email), role=current.role.value)

        try:
            merged, backend_token = await asyncio.wait_for(
                self._reconcile(provider_token, current, Role.BUYER),
                timeout=self.reconcile_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Backend reconciliation timed out, continuing with provider-only trust",
                timeout_seconds=self.reconcile_timeout
            )
            return
        except AuthDegraded as e:
            logger.warning("Backend reconciliation failed, continuing with provider-only trust", error=str(e))
            return

        if generation != self._generation:
            logger.debug("Discarding reconciliation result for a superseded sign-in")
            return
        await self._commit(merged, backend_token)

    def _persisted_for(self, provider_id: str) -> Optional[Identity]:
        """
        The persisted identity when it belongs to ``provider_id``.

        A persisted identity of another user is discarded together with both tokens.
        """
        persisted = self.store.load_identity()
        if persisted is None or persisted.provider_id == provider_id:
            return persisted

        logger.info("Persisted identity belongs to another user, discarding it")
        self.store.remove(BACKEND_TOKEN_KEY, TOKEN_KEY, USER_KEY)
        return None

    # Reconciliation

    async def _reconcile(
        self,
        provider_token: str,
        current: Identity,
        role_fallback: Role
    ) -> tuple[Identity, Optional[str]]:
        """Exchange the provider token for the backend's authoritative identity and token."""
        try:
            data = await self.api.post(LOGIN_PATH, json={"idToken": provider_token})
        except MarketplaceError as e:
            raise AuthDegraded(str(e)) from e

        if not isinstance(data, dict) or not isinstance(data.get("user"), dict):
            raise AuthDegraded("Login response did not include a user record")

        try:
            merged = merge_backend_identity(current, data["user"], role_fallback=role_fallback)
        except (ValueError, PydanticValidationError) as e:
            raise AuthDegraded(f"Login response carried an invalid user record: {e}") from e
        return merged, data.get("token")

    async def _commit(self, identity: Identity, backend_token: Optional[str]) -> None:
        if backend_token:
            self.store.set(BACKEND_TOKEN_KEY, backend_token)
        self.store.save_identity(identity)
        await self._set_state(SessionState.reconciled(identity))
        logger.info(
            "User reconciled with backend",
            email=mask_email(identity.email),
            role=identity.role.value,
            verified=identity.verified,
            flagged=identity.flagged
        )

    async def refresh(self) -> Optional[Identity]:
        """
        Force a new provider token and reconcile without a timeout.

        Returns the merged identity, or the previous identity unchanged when the
        provider or backend step fails.
        """
        previous = self._state.identity
        if previous is None:
            logger.info("Refresh skipped, no signed-in user")
            return None

        generation = self._generation
        with correlation_context():
            try:
                provider_token = await self.provider.get_token(force_refresh=True)
            except IdentityProviderError as e:
                logger.error("Forced token refresh failed", error=str(e))
                return previous

            if generation != self._generation:
                return self._state.identity
            self.store.set(TOKEN_KEY, provider_token)

            try:
                merged, backend_token = await self._reconcile(provider_token, previous, role_fallback=previous.role)
            except AuthDegraded as e:
                logger.error("Failed to refresh user data from backend", error=str(e))
                return previous

            if generation != self._generation:
                return self._state.identity
            await self._commit(merged, backend_token)
            return merged

    # Provider passthroughs

    async def sign_in(self, email: str, password: str) -> SessionState:
        """Sign in with the provider and wait for the session to show the new user."""
        provider_identity = await self.provider.sign_in_with_password(email, password)
        return await self._await_identity(provider_identity)

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> SessionState:
        provider_identity = await self.provider.sign_up(email, password, display_name)
        return await self._await_identity(provider_identity)

    async def sign_out(self) -> SessionState:
        await self.provider.sign_out()
        try:
            return await self.wait_for(
                lambda s: s.phase == SessionPhase.SIGNED_OUT,
                timeout=self.api.config.request_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Provider did not report sign-out in time")
            return self._state

    async def _await_identity(self, provider_identity: ProviderIdentity) -> SessionState:
        def signed_in_as(state: SessionState) -> bool:
            return state.identity is not None and state.identity.provider_id == provider_identity.provider_id

        try:
            return await self.wait_for(signed_in_as, timeout=self.api.config.request_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Provider did not report sign-in in time")
            return self._state
