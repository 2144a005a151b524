"""Buyer wishlist service."""

from typing import Any, Callable, Optional

from src.models.identity import Identity, Role
from src.models.property import Property
from src.models.wishlist import WishlistItem
from src.services.access import require_role
from src.services.api_client import ApiClient


class WishlistService:
    """Save, list and remove properties on the signed-in buyer's wishlist."""

    def __init__(self, api: ApiClient, identity: Callable[[], Optional[Identity]]):
        self.api = api
        self._identity = identity

    async def add(self, listing: Property) -> Any:
        buyer = require_role(self._identity(), Role.BUYER, message="Only users can add properties to wishlist")
        return await self.api.post("/wishlist", json={
            "propertyId": listing.id,
            "propertyTitle": listing.title,
            "propertyLocation": listing.location,
            "propertyImage": listing.image,
            "agentName": listing.agent_name,
            "agentEmail": listing.agent_email,
            "userEmail": buyer.email,
        })

    async def remove(self, item_id: str) -> Any:
        return await self.api.delete(f"/wishlist/{item_id}")

    async def items(self) -> list[WishlistItem]:
        data = await self.api.get("/wishlist")
        return [WishlistItem.model_validate(item) for item in data or []]
