"""Property listing service."""

from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from src.models.identity import Identity, Role
from src.models.property import Property, PropertyDraft, VerificationStatus
from src.services.access import require_role
from src.services.api_client import ApiClient
from src.utils.errors import ValidationError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DEFAULT_PROPERTY_IMAGE = "https://images.unsplash.com/photo-1570129477492-45c003edd2be?w=400"


def _properties(data: Any) -> list[Property]:
    return [Property.model_validate(item) for item in data or []]


class PropertyService:
    """Read and manage listings. Agent and admin actions are role-guarded client-side."""

    def __init__(self, api: ApiClient, identity: Callable[[], Optional[Identity]]):
        self.api = api
        self._identity = identity

    async def list_public(self) -> list[Property]:
        return _properties(await self.api.get("/properties/public"))

    async def search(self, location: str) -> list[Property]:
        if not location or not location.strip():
            return await self.list_public()
        return _properties(await self.api.get("/properties/search", params={"location": location.strip()}))

    async def get(self, property_id: str) -> Property:
        return Property.model_validate(await self.api.get(f"/properties/{property_id}"))

    async def advertisements(self) -> list[Property]:
        return _properties(await self.api.get("/properties/advertisements"))

    async def list_all(self) -> list[Property]:
        """Every listing regardless of verification status (admin)."""
        require_role(self._identity(), Role.ADMIN)
        return _properties(await self.api.get("/properties/admin/all"))

    async def my_properties(self) -> list[Property]:
        require_role(self._identity(), Role.AGENT)
        return _properties(await self.api.get("/properties/agent/my-properties"))

    async def create(self, draft: dict[str, Any]) -> Any:
        """Submit a new listing; it starts pending admin verification."""
        agent = require_role(self._identity(), Role.AGENT, message="Only agents can add properties.")
        try:
            listing = PropertyDraft.model_validate(draft)
        except PydanticValidationError as e:
            raise ValidationError(e.errors()[0]["msg"]) from e

        payload = {
            "title": listing.title,
            "location": listing.location,
            "description": listing.description,
            "image": listing.image or DEFAULT_PROPERTY_IMAGE,
            "minPrice": listing.min_price,
            "maxPrice": listing.max_price,
            "priceRange": listing.price_range,
            "agentName": agent.display_name or agent.email,
            "agentEmail": agent.email,
            "agentUid": agent.provider_id,
            "verificationStatus": VerificationStatus.PENDING.value,
            "isAdvertised": False,
            "propertyType": listing.property_type,
            "bedrooms": listing.bedrooms,
            "bathrooms": listing.bathrooms,
            "area": listing.area,
        }
        result = await self.api.post("/properties", json={k: v for k, v in payload.items() if v is not None})
        logger.info("Property submitted for verification", title=listing.title)
        return result

    async def update(self, property_id: str, changes: dict[str, Any]) -> Any:
        require_role(self._identity(), Role.AGENT)
        return await self.api.patch(f"/properties/{property_id}", json=changes)

    async def delete(self, property_id: str) -> Any:
        require_role(self._identity(), Role.AGENT, Role.ADMIN)
        return await self.api.delete(f"/properties/{property_id}")

    async def verify(self, property_id: str, status: VerificationStatus) -> Any:
        """Set a listing's verification status (admin)."""
        require_role(self._identity(), Role.ADMIN)
        status = VerificationStatus(status)
        result = await self.api.patch(f"/properties/verify/{property_id}", json={"status": status.value})
        logger.info("Property verification updated", property_id=property_id, verification_status=status.value)
        return result

    async def advertise(self, property_id: str, is_advertised: bool) -> Any:
        require_role(self._identity(), Role.ADMIN)
        return await self.api.patch(f"/properties/advertise/{property_id}", json={"isAdvertised": is_advertised})
