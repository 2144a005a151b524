"""Property listing models."""

from enum import Enum
from typing import Any, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class VerificationStatus(str, Enum):
    """Admin verification state of a listing."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SaleStatus(str, Enum):
    """Whether a listing can still be bought."""
    LISTED = "listed"
    SOLD = "sold"


def format_price(amount: Union[int, float]) -> str:
    """Format an amount as whole US dollars, e.g. $200,000."""
    return f"${amount:,.0f}"


class Property(BaseModel):
    """Real estate listing as served by the marketplace backend."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"), description="Property ID")
    title: str = Field(..., description="Listing title")
    location: str = Field(..., description="Human readable location")
    description: Optional[str] = None
    image: Optional[str] = Field(None, description="Primary image URL")
    images: list[str] = Field(default_factory=list, description="All image URLs")
    min_price: Optional[float] = Field(None, validation_alias=AliasChoices("minPrice", "min_price"), ge=0)
    max_price: Optional[float] = Field(None, validation_alias=AliasChoices("maxPrice", "max_price"), ge=0)
    price_range: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("priceRange", "price_range"),
        description="Display string; derived from min/max when absent"
    )
    agent_name: Optional[str] = Field(None, validation_alias=AliasChoices("agentName", "agent_name"))
    agent_email: Optional[str] = Field(None, validation_alias=AliasChoices("agentEmail", "agent_email"))
    agent_uid: Optional[str] = Field(None, validation_alias=AliasChoices("agentUid", "agent_uid"))
    verification_status: VerificationStatus = Field(
        VerificationStatus.PENDING,
        validation_alias=AliasChoices("verificationStatus", "verification_status")
    )
    is_advertised: bool = Field(False, validation_alias=AliasChoices("isAdvertised", "is_advertised"))
    sale_status: SaleStatus = Field(SaleStatus.LISTED, validation_alias=AliasChoices("saleStatus", "sale_status"))
    property_type: Optional[str] = Field(None, validation_alias=AliasChoices("propertyType", "property_type"))
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    area: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def fill_images(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("image") and data.get("images"):
            data = {**data, "image": data["images"][0]}
        return data

    @model_validator(mode="after")
    def derive_price_range(self) -> "Property":
        if not self.price_range and self.min_price is not None and self.max_price is not None:
            self.price_range = f"{format_price(self.min_price)} - {format_price(self.max_price)}"
        return self

    def accepts_amount(self, amount: float) -> bool:
        """True when ``amount`` lies within [min_price, max_price]; an unset bound is open."""
        if self.min_price is not None and amount < self.min_price:
            return False
        if self.max_price is not None and amount > self.max_price:
            return False
        return True

    @property
    def can_receive_offers(self) -> bool:
        return (
            self.verification_status == VerificationStatus.VERIFIED
            and self.sale_status == SaleStatus.LISTED
        )

    def bounds_message(self) -> str:
        low = format_price(self.min_price or 0)
        high = format_price(self.max_price) if self.max_price is not None else "no limit"
        return f"Offer amount must be between {low} and {high}"


class PropertyDraft(BaseModel):
    """Agent-submitted listing, before admin verification."""
    title: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    min_price: float = Field(..., ge=0)
    max_price: float = Field(..., ge=0)
    price_range: Optional[str] = None
    property_type: Optional[str] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    area: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_price_order(self) -> "PropertyDraft":
        if self.min_price >= self.max_price:
            raise ValueError("Maximum price must be greater than minimum price")
        return self
