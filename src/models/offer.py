"""Offer lifecycle models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class OfferStatus(str, Enum):
    """Offer status values."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BOUGHT = "bought"


# Canonical lifecycle. Cancellation deletes a pending offer and is not a status.
OFFER_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.PENDING: frozenset({OfferStatus.ACCEPTED, OfferStatus.REJECTED}),
    OfferStatus.ACCEPTED: frozenset({OfferStatus.BOUGHT}),
    OfferStatus.REJECTED: frozenset(),
    OfferStatus.BOUGHT: frozenset(),
}

ACTIVE_STATUSES = frozenset({OfferStatus.PENDING, OfferStatus.ACCEPTED})


def can_transition(current: OfferStatus, target: OfferStatus) -> bool:
    """Check whether ``current -> target`` is a legal offer transition."""
    return target in OFFER_TRANSITIONS[current]


class Offer(BaseModel):
    """A buyer's proposal to purchase a property at a specific price."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"), description="Offer ID")
    property_id: str = Field(..., validation_alias=AliasChoices("propertyId", "property_id"))
    property_title: Optional[str] = Field(None, validation_alias=AliasChoices("propertyTitle", "property_title"))
    property_location: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("propertyLocation", "property_location")
    )
    property_image: Optional[str] = Field(None, validation_alias=AliasChoices("propertyImage", "property_image"))
    agent_name: Optional[str] = Field(None, validation_alias=AliasChoices("agentName", "agent_name"))
    agent_email: Optional[str] = Field(None, validation_alias=AliasChoices("agentEmail", "agent_email"))
    buyer_name: Optional[str] = Field(None, validation_alias=AliasChoices("buyerName", "buyer_name"))
    buyer_email: Optional[str] = Field(None, validation_alias=AliasChoices("buyerEmail", "buyer_email"))
    offered_amount: float = Field(..., validation_alias=AliasChoices("offeredAmount", "offered_amount"), ge=0)
    buying_date: Optional[datetime] = Field(None, validation_alias=AliasChoices("buyingDate", "buying_date"))
    status: OfferStatus = Field(default=OfferStatus.PENDING, description="pending, accepted, rejected, bought")
    transaction_id: Optional[str] = Field(None, validation_alias=AliasChoices("transactionId", "transaction_id"))
    created_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("createdAt", "created_at"))
    updated_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("updatedAt", "updated_at"))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not OFFER_TRANSITIONS[self.status]

    @property
    def can_cancel(self) -> bool:
        return self.status == OfferStatus.PENDING

    @property
    def can_pay(self) -> bool:
        return self.status == OfferStatus.ACCEPTED


class SoldTotal(BaseModel):
    """Agent's aggregate of bought offers."""
    total_sold_amount: float = Field(0, validation_alias=AliasChoices("totalSoldAmount", "total_sold_amount"))
