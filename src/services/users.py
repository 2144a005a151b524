"""User administration service."""

from typing import Any, Awaitable, Callable, Optional

from src.models.identity import Identity, Role, UserRecord
from src.services.access import require_role
from src.services.api_client import ApiClient
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


class UserService:
    """Admin user management plus the buyer's self-service upgrade to agent."""

    def __init__(
        self,
        api: ApiClient,
        identity: Callable[[], Optional[Identity]],
        refresh_session: Callable[[], Awaitable[Optional[Identity]]]
    ):
        self.api = api
        self._identity = identity
        self._refresh_session = refresh_session

    async def list_users(self) -> list[UserRecord]:
        require_role(self._identity(), Role.ADMIN)
        data = await self.api.get("/users")
        return [UserRecord.model_validate(item) for item in data or []]

    async def _admin_patch(self, action: str, user_id: str) -> Any:
        require_role(self._identity(), Role.ADMIN)
        result = await self.api.patch(f"/users/{action}/{user_id}")
        logger.info("User updated by admin", action=action, user_id=mask_user_id(user_id))
        return result

    async def make_admin(self, user_id: str) -> Any:
        return await self._admin_patch("make-admin", user_id)

    async def make_agent(self, user_id: str) -> Any:
        return await self._admin_patch("make-agent", user_id)

    async def mark_fraud(self, user_id: str) -> Any:
        """Flag an agent as fraudulent; the backend hides their listings."""
        return await self._admin_patch("mark-fraud", user_id)

    async def delete(self, user_id: str) -> Any:
        require_role(self._identity(), Role.ADMIN)
        return await self.api.delete(f"/users/{user_id}")

    async def become_agent(self) -> Optional[Identity]:
        """Upgrade the signed-in buyer to agent and pull the new role into the session."""
        require_role(self._identity(), Role.BUYER)
        await self.api.post("/users/become-agent")
        return await self._refresh_session()
