"""Wishlist models."""

from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class WishlistItem(BaseModel):
    """Property snapshot saved by a buyer."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"), description="Wishlist entry ID")
    property_id: str = Field(..., validation_alias=AliasChoices("propertyId", "property_id"))
    property_title: Optional[str] = Field(None, validation_alias=AliasChoices("propertyTitle", "property_title"))
    property_location: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("propertyLocation", "property_location")
    )
    property_image: Optional[str] = Field(None, validation_alias=AliasChoices("propertyImage", "property_image"))
    agent_name: Optional[str] = Field(None, validation_alias=AliasChoices("agentName", "agent_name"))
    agent_email: Optional[str] = Field(None, validation_alias=AliasChoices("agentEmail", "agent_email"))
    user_email: Optional[str] = Field(None, validation_alias=AliasChoices("userEmail", "user_email"))
    min_price: Optional[float] = Field(None, validation_alias=AliasChoices("minPrice", "min_price"))
    max_price: Optional[float] = Field(None, validation_alias=AliasChoices("maxPrice", "max_price"))
    price_range: Optional[str] = Field(None, validation_alias=AliasChoices("priceRange", "price_range"))
    verification_status: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("verificationStatus", "verification_status")
    )
