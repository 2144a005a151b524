"""Payment processor integration (Stripe)."""

import asyncio
from typing import Any, Optional

import stripe

from src.models.payment import PaymentIntent, PaymentResult
from src.utils.errors import ConfigurationError, PaymentError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class PaymentProcessor:
    """Client-side confirmation of a backend-created payment intent."""

    async def confirm(self, intent: PaymentIntent, payment_method: str) -> PaymentResult:
        """
        Confirm ``intent`` with ``payment_method``.

        Raises:
            PaymentError: the processor declined or failed; message is the processor's own.
        """
        raise NotImplementedError


class StripePaymentProcessor(PaymentProcessor):
    """
    Confirms PaymentIntents with a publishable key and the intent's client secret,
    the same credentials a browser checkout uses. No secret key ever reaches the client.
    """

    def __init__(self, publishable_key: str, return_url: Optional[str] = None):
        if not publishable_key:
            raise ConfigurationError("Payment processing is not available: STRIPE_PUBLISHABLE_KEY is not set")
        if not publishable_key.startswith("pk_"):
            raise ConfigurationError("Stripe key must be a publishable key (pk_...)")
        self.publishable_key = publishable_key
        self.return_url = return_url

    def _confirm(self, intent: PaymentIntent, payment_method: str) -> Any:
        params: dict[str, Any] = {
            "client_secret": intent.client_secret,
            "payment_method": payment_method,
        }
        if self.return_url:
            params["return_url"] = self.return_url
        return stripe.PaymentIntent.confirm(intent.intent_id, api_key=self.publishable_key, **params)

    async def confirm(self, intent: PaymentIntent, payment_method: str) -> PaymentResult:
        logger.info("Confirming payment with processor", payment_intent_id=intent.intent_id)
        try:
            confirmed = await asyncio.to_thread(self._confirm, intent, payment_method)
        except stripe.StripeError as e:
            message = e.user_message or str(e)
            logger.warning(
                "Processor rejected payment",
                payment_intent_id=intent.intent_id,
                error_code=getattr(e, "code", None)
            )
            raise PaymentError(message) from e

        logger.info("Processor confirmation finished", payment_intent_id=confirmed.id, payment_status=confirmed.status)
        return PaymentResult(payment_intent_id=confirmed.id, status=confirmed.status)
