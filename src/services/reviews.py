"""Property review service."""

from typing import Any, Callable, Optional

from src.models.identity import Identity, Role
from src.models.property import Property
from src.models.review import Review
from src.services.access import require_role
from src.services.api_client import ApiClient
from src.utils.errors import ValidationError

DEFAULT_AVATAR = "/default-avatar.png"


def _reviews(data: Any) -> list[Review]:
    return [Review.model_validate(item) for item in data or []]


class ReviewService:
    """Post and browse property reviews."""

    def __init__(self, api: ApiClient, identity: Callable[[], Optional[Identity]]):
        self.api = api
        self._identity = identity

    async def add(self, listing: Property, text: str, rating: int = 5) -> Review:
        reviewer = require_role(self._identity(), Role.BUYER, message="Only users can review properties")
        if not text or not text.strip():
            raise ValidationError("Please enter a review")
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        data = await self.api.post("/reviews", json={
            "propertyId": listing.id,
            "propertyTitle": listing.title,
            "agentName": listing.agent_name,
            "reviewerName": reviewer.display_name or reviewer.email,
            "reviewerEmail": reviewer.email,
            "reviewerImage": reviewer.photo_url or DEFAULT_AVATAR,
            "reviewText": text.strip(),
            "rating": rating,
        })
        return Review.model_validate(data)

    async def for_property(self, property_id: str) -> list[Review]:
        return _reviews(await self.api.get(f"/reviews/property/{property_id}"))

    async def mine(self) -> list[Review]:
        return _reviews(await self.api.get("/reviews/my-reviews"))

    async def latest(self) -> list[Review]:
        return _reviews(await self.api.get("/reviews/latest"))

    async def list_all(self) -> list[Review]:
        require_role(self._identity(), Role.ADMIN)
        return _reviews(await self.api.get("/reviews"))

    async def delete(self, review_id: str) -> Any:
        return await self.api.delete(f"/reviews/{review_id}")
