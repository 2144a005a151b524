"""Payment models."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PaymentIntent(BaseModel):
    """Backend-issued intent scoped to one offer's amount."""
    model_config = ConfigDict(populate_by_name=True)

    client_secret: str = Field(..., validation_alias=AliasChoices("clientSecret", "client_secret"), min_length=1)

    @property
    def intent_id(self) -> str:
        """Stripe client secrets have the form ``<intent id>_secret_<nonce>``."""
        return self.client_secret.split("_secret_")[0]


class PaymentResult(BaseModel):
    """Outcome of the processor-side confirmation step."""
    payment_intent_id: str
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"
