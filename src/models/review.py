"""Property review model."""

from datetime import datetime
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Review(BaseModel):
    """A user's review of a property."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"), description="Review ID")
    property_id: str = Field(..., validation_alias=AliasChoices("propertyId", "property_id"))
    property_title: Optional[str] = Field(None, validation_alias=AliasChoices("propertyTitle", "property_title"))
    agent_name: Optional[str] = Field(None, validation_alias=AliasChoices("agentName", "agent_name"))
    reviewer_name: Optional[str] = Field(None, validation_alias=AliasChoices("reviewerName", "reviewer_name"))
    reviewer_email: Optional[str] = Field(None, validation_alias=AliasChoices("reviewerEmail", "reviewer_email"))
    reviewer_image: Optional[str] = Field(None, validation_alias=AliasChoices("reviewerImage", "reviewer_image"))
    review_text: str = Field(..., validation_alias=AliasChoices("reviewText", "review_text"))
    rating: int = Field(5, ge=1, le=5, description="Star rating (1-5)")
    created_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("createdAt", "created_at"))
